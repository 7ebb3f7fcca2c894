from app.promptlib.modules.directory.service import BootMeta, CategorySummary, DirectoryBootData, PromptPage, PromptSummary
from app.promptlib.modules.directory.state import (
    BootDataCache,
    DirectorySnapshot,
    DirectoryState,
    load_snapshot,
    page_window,
    resolve_boot_data,
    resolve_prompt_list,
    write_snapshot,
)


def _boot(name="Worship"):
    return DirectoryBootData(
        categories=[CategorySummary(category_id="worship", name=name, description="", icon="", prompt_count=2)],
        recent_prompts=[],
        meta=BootMeta(category_count=1, recent_count=0, generated_at=1),
    )


def _summary(pid=1, title="Call to worship"):
    return PromptSummary(
        id=pid,
        title=title,
        excerpt="",
        category="worship",
        author_name="Sam",
        usage_count=0,
        execution_count=0,
        tags=("liturgy",),
        created_at=1700000000000,
    )


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_state_from_args_parses_and_normalizes():
    state = DirectoryState.from_args({"category": "youth, worship,youth", "q": "  easter ", "sort": "POPULAR", "page": "3"})
    assert state.categories == ("youth", "worship")
    assert state.search == "easter"
    assert state.sort == "popular"
    assert state.page == 3


def test_state_from_args_drops_bad_values():
    state = DirectoryState.from_args({"sort": "weird", "page": "-2"})
    assert state.sort == ""
    assert state.page == 1
    assert DirectoryState.from_args({"page": "abc"}).page == 1


def test_state_serializes_only_non_defaults():
    assert DirectoryState().href() == "/directory"
    state = DirectoryState(categories=("youth",), search="easter egg", sort="recent", page=2)
    assert state.to_params() == {"category": "youth", "q": "easter egg", "sort": "recent", "page": "2"}
    assert state.href() == "/directory?category=youth&q=easter+egg&sort=recent&page=2"
    assert DirectoryState(page=1, search="x").to_params() == {"q": "x"}


def test_state_round_trips_through_query_params():
    state = DirectoryState(categories=("youth", "worship"), search="retreat", sort="featured", page=4)
    assert DirectoryState.from_args(state.to_params()) == state


def test_changing_filters_resets_page():
    state = DirectoryState(search="a", page=5)
    assert state.with_search("b").page == 1
    assert state.with_sort("recent").page == 1
    assert state.toggle_category("youth").page == 1
    assert state.with_sort("bogus").sort == ""


def test_toggle_category_adds_and_removes():
    state = DirectoryState().toggle_category("youth").toggle_category("worship")
    assert state.categories == ("youth", "worship")
    assert state.query_category == "youth"
    assert state.toggle_category("youth").categories == ("worship",)


def test_query_sort_maps_popular_to_usage():
    assert DirectoryState(sort="popular").query_sort == "usage"
    assert DirectoryState(sort="recent").query_sort == "recent"
    assert DirectoryState().query_sort is None
    assert DirectoryState(sort="popular").sort_label == "Sorting by popularity"


def test_cleared_and_default_view():
    state = DirectoryState(categories=("youth",), search="x", sort="recent", page=3)
    assert state.has_filters
    assert not state.is_default_view
    assert state.cleared().is_default_view


def test_go_to_page_stays_within_bounds():
    state = DirectoryState(page=2)
    assert state.go_to_page(3, total_pages=3).page == 3
    assert state.go_to_page(4, total_pages=3).page == 2
    assert state.go_to_page(0, total_pages=3).page == 2
    assert state.go_to_page(1, total_pages=0).page == 1


def test_clamped():
    assert DirectoryState(page=9).clamped(4).page == 4
    assert DirectoryState(page=9).clamped(0).page == 1
    assert DirectoryState(page=2).clamped(4).page == 2


def test_page_window():
    assert page_window(1, 0) == []
    assert page_window(2, 3) == [1, 2, 3]
    assert page_window(1, 10) == [1, 2, 3, 4, 5]
    assert page_window(6, 10) == [4, 5, 6, 7, 8]
    assert page_window(10, 10) == [6, 7, 8, 9, 10]


def test_boot_cache_expires_after_ttl():
    clock = _Clock()
    cache = BootDataCache(ttl_seconds=300, clock=clock)
    assert cache.get() is None
    data = _boot()
    cache.put(data)
    clock.now += 299
    assert cache.get() is data
    clock.now += 1
    assert cache.get() is None


def test_boot_cache_clear():
    cache = BootDataCache(ttl_seconds=300, clock=_Clock())
    cache.put(_boot())
    cache.clear()
    assert cache.get() is None


def test_resolve_boot_data_precedence():
    live, cached, initial = _boot("live"), _boot("cached"), _boot("initial")
    assert resolve_boot_data(live, cached, initial) == (live, "live")
    assert resolve_boot_data(None, cached, initial) == (cached, "cache")
    assert resolve_boot_data(None, None, initial) == (initial, "initial")
    assert resolve_boot_data(None, None, None) == (None, None)


def test_resolve_prompt_list_prefers_live_result():
    live = PromptPage(prompts=[_summary(2, "live")], total_count=1, total_pages=1, page=1, limit=50)
    initial = (_summary(1, "initial"),)
    assert [p.title for p in resolve_prompt_list(live, initial, DirectoryState())] == ["live"]


def test_resolve_prompt_list_uses_snapshot_only_for_unfiltered_first_page():
    initial = (_summary(1, "initial"),)
    assert [p.title for p in resolve_prompt_list(None, initial, DirectoryState())] == ["initial"]
    assert [p.title for p in resolve_prompt_list(None, initial, DirectoryState(sort="recent"))] == ["initial"]
    assert resolve_prompt_list(None, initial, DirectoryState(page=2)) == []
    assert resolve_prompt_list(None, initial, DirectoryState(search="x")) == []
    assert resolve_prompt_list(None, initial, DirectoryState(categories=("youth",))) == []


def test_snapshot_file_round_trip(tmp_path):
    path = tmp_path / "nested" / "snapshot.json"
    snap = DirectorySnapshot(boot=_boot(), prompts=(_summary(),))
    write_snapshot(path, snap)
    loaded = load_snapshot(path)
    assert loaded.boot.categories[0].name == "Worship"
    assert loaded.prompts[0].tags == ("liturgy",)


def test_load_snapshot_missing_or_corrupt(tmp_path):
    assert load_snapshot(None).boot is None
    assert load_snapshot(tmp_path / "missing.json").prompts == ()
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert load_snapshot(bad).boot is None
