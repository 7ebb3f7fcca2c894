from app.promptlib import create_app

app = create_app()
