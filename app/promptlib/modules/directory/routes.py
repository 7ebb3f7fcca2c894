from __future__ import annotations

from flask import Blueprint, Flask, abort, current_app, g, jsonify, redirect, render_template, request
from sqlalchemy.exc import SQLAlchemyError

from app.promptlib.db import db_session, rollback_quietly
from app.promptlib.modules.directory.models import Category, Prompt
from app.promptlib.modules.directory.service import (
    DirectoryBootData,
    PromptPage,
    can_view_prompt,
    get_approved_prompts,
    get_directory_boot_data,
    record_prompt_usage,
)
from app.promptlib.modules.directory.state import (
    SORT_CHOICES,
    BootDataCache,
    DirectorySnapshot,
    DirectoryState,
    load_snapshot,
    page_window,
    resolve_boot_data,
    resolve_prompt_list,
)

bp = Blueprint("directory", __name__)
api_bp = Blueprint("directory_api", __name__)


def init_directory(app: Flask) -> None:
    app.extensions["directory_boot_cache"] = BootDataCache(ttl_seconds=app.config["BOOT_CACHE_TTL_SECONDS"])
    app.extensions["directory_snapshot"] = load_snapshot(app.config.get("DIRECTORY_SNAPSHOT_PATH"))


def boot_cache() -> BootDataCache:
    return current_app.extensions["directory_boot_cache"]


def snapshot() -> DirectorySnapshot:
    return current_app.extensions.get("directory_snapshot") or DirectorySnapshot()


def _page_size() -> int:
    return int(current_app.config.get("DIRECTORY_PAGE_SIZE") or 50)


def fetch_live_boot_data() -> DirectoryBootData | None:
    s = db_session()
    try:
        data = get_directory_boot_data(s)
    except SQLAlchemyError:
        current_app.logger.exception("Directory boot query failed (request_id=%s)", getattr(g, "request_id", None))
        rollback_quietly(s)
        return None
    boot_cache().put(data)
    return data


def fetch_live_page(state: DirectoryState) -> PromptPage | None:
    s = db_session()
    try:
        return get_approved_prompts(
            s,
            category=state.query_category,
            search=state.search or None,
            sort=state.query_sort,
            limit=_page_size(),
            page=state.page,
        )
    except SQLAlchemyError:
        current_app.logger.exception("Directory listing query failed (request_id=%s)", getattr(g, "request_id", None))
        rollback_quietly(s)
        return None


@bp.get("/directory")
def directory_index():
    state = DirectoryState.from_args(request.args)

    live = fetch_live_boot_data()
    boot, boot_source = resolve_boot_data(live, boot_cache().get(), snapshot().boot)

    result = fetch_live_page(state)
    if result is not None and state.page > max(result.total_pages, 1):
        return redirect(state.clamped(max(result.total_pages, 1)).href())

    prompts = resolve_prompt_list(result, snapshot().prompts, state)
    total_pages = (result.total_pages if result else 0) or 1
    total_count = result.total_count if result else len(prompts)
    is_loading = boot is None or (result is None and not prompts)
    if boot_source and boot_source != "live":
        current_app.logger.warning("Directory rendered from %s boot data", boot_source)

    return render_template(
        "directory/index.html",
        state=state,
        boot=boot,
        boot_source=boot_source,
        categories=boot.categories if boot else [],
        newest=boot.recent_prompts if boot else [],
        prompts=prompts,
        total_count=total_count,
        total_pages=total_pages,
        pages=page_window(state.page, total_pages),
        sort_choices=SORT_CHOICES,
        is_loading=is_loading,
    )


@bp.get("/directory/<int:prompt_id>")
def prompt_detail(prompt_id: int):
    s = db_session()
    p = s.get(Prompt, prompt_id)
    if p is None or not can_view_prompt(p, getattr(g, "current_user", None)):
        abort(404)
    category = s.query(Category).filter(Category.category_id == p.category).one_or_none()
    return render_template("directory/detail.html", prompt=p, category=category)


def _bad_request(message: str):
    return jsonify({"error": message}), 400


@api_bp.get("/directory/boot")
def api_boot():
    live = fetch_live_boot_data()
    boot, source = resolve_boot_data(live, boot_cache().get(), snapshot().boot)
    if boot is None:
        return jsonify({"error": "Directory data is temporarily unavailable."}), 503
    payload = boot.to_dict()
    payload["source"] = source
    return jsonify(payload)


@api_bp.get("/prompts")
def api_prompts():
    try:
        limit = int(request.args.get("limit") or _page_size())
        page = int(request.args.get("page") or 1)
    except ValueError:
        return _bad_request("limit and page must be integers.")
    s = db_session()
    try:
        result = get_approved_prompts(
            s,
            category=request.args.get("category") or None,
            search=request.args.get("search") or None,
            sort=request.args.get("sort") or None,
            limit=limit,
            page=page,
        )
    except ValueError as e:
        return _bad_request(str(e))
    return jsonify(result.to_dict())


@api_bp.post("/prompts/<int:prompt_id>/usage")
def api_prompt_usage(prompt_id: int):
    payload = request.get_json(silent=True) or {}
    kind = (payload.get("kind") if isinstance(payload, dict) else None) or request.form.get("kind") or "copy"
    s = db_session()
    p = s.get(Prompt, prompt_id)
    if p is None or not p.is_approved:
        return jsonify({"error": "Prompt not found."}), 404
    try:
        record_prompt_usage(s, p, kind)
    except ValueError as e:
        return _bad_request(str(e))
    s.commit()
    return jsonify({"id": p.id, "usageCount": p.usage_count, "executionCount": p.execution_count})
