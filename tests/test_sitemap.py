from datetime import datetime
from xml.etree import ElementTree

import pytest

from app.promptlib import create_app
from app.promptlib.db import session_scope
from app.promptlib.models import Base
from app.promptlib.modules.blogs.models import BlogPost
from app.promptlib.modules.directory.models import Prompt
from app.promptlib.sitemap import SitemapItem, build_sitemap_items

NS = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("SITE_URL", "https://prompts.example.org/")
    monkeypatch.delenv("DIRECTORY_SNAPSHOT_PATH", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add_all(
            [
                Prompt(title="Approved", content="c" * 30, category="worship", status="approved",
                       created_at=datetime(2026, 3, 1, 9, 30), updated_at=datetime(2026, 3, 2, 10, 0, 0, 250000)),
                Prompt(title="Pending", content="c" * 30, category="worship", status="pending",
                       created_at=datetime(2026, 3, 1, 9, 30)),
                BlogPost(slug="easter-recap", title="Easter recap", published=True, created_at=datetime(2026, 4, 6)),
                BlogPost(slug="draft-post", title="Draft", published=False, created_at=datetime(2026, 4, 7)),
            ]
        )
    return app.test_client()


def test_build_items_static_pages_first():
    items = build_sitemap_items("https://x.org/", [], [])
    assert [i.url for i in items] == [
        "https://x.org/",
        "https://x.org/directory",
        "https://x.org/blogs",
        "https://x.org/submit",
    ]
    assert items[0].priority_text == "1"
    assert items[1].priority_text == "0.9"


def test_priority_text_omitted_when_unset():
    assert SitemapItem(url="https://x.org/a").priority_text is None


def test_sitemap_xml(client):
    r = client.get("/sitemap.xml")
    assert r.status_code == 200
    assert r.mimetype == "application/xml"
    assert r.headers["Cache-Control"] == "public, max-age=3600"

    root = ElementTree.fromstring(r.data)
    urls = {u.findtext("sm:loc", namespaces=NS): u for u in root.findall("sm:url", NS)}
    assert "https://prompts.example.org/directory" in urls

    with session_scope(client.application) as s:
        approved_id = s.query(Prompt).filter(Prompt.title == "Approved").one().id
        pending_id = s.query(Prompt).filter(Prompt.title == "Pending").one().id

    prompt_url = urls[f"https://prompts.example.org/directory/{approved_id}"]
    assert prompt_url.findtext("sm:lastmod", namespaces=NS) == "2026-03-02T10:00:00.250Z"
    assert prompt_url.findtext("sm:changefreq", namespaces=NS) == "weekly"
    assert prompt_url.findtext("sm:priority", namespaces=NS) == "0.7"
    assert f"https://prompts.example.org/directory/{pending_id}" not in urls

    assert "https://prompts.example.org/blogs/easter-recap" in urls
    assert "https://prompts.example.org/blogs/draft-post" not in urls


def test_sitemap_survives_database_errors(client, monkeypatch):
    from sqlalchemy.exc import OperationalError

    from app.promptlib import sitemap

    def _fail(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("down"))

    monkeypatch.setattr(sitemap, "list_approved_for_sitemap", _fail)
    r = client.get("/sitemap.xml")
    assert r.status_code == 200
    root = ElementTree.fromstring(r.data)
    assert len(root.findall("sm:url", NS)) == 4
