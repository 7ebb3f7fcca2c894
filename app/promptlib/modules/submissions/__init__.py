"""
Member prompt submissions. Everything submitted starts as pending and waits for moderation.
"""
