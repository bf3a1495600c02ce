from __future__ import annotations

import random

import pytest

from ghdeps.list_model import ListModel, filter_prs, searchable_text, sort_by_repo
from ghdeps.models import BotType, MergeableState


@pytest.fixture
def prs(make_pr):
    return [
        make_pr("acme/web", 3, title="Update react to v18", bot_type=BotType.RENOVATE, labels=("frontend",)),
        make_pr("acme/api", 1, title="Bump flask", bot_type=BotType.DEPENDABOT, version="2.0 -> 3.0"),
        make_pr("acme/ci", 2, title="Update actions/checkout", bot_type=BotType.GITHUB_ACTIONS),
        make_pr("acme/api", 4, title="Bump requests", bot_type=BotType.DEPENDABOT, labels=("security",)),
    ]


def test_sort_by_repo_is_stable_within_repository(prs) -> None:
    ordered = sort_by_repo(prs)
    assert [p.key for p in ordered] == [("acme/api", 1), ("acme/api", 4), ("acme/ci", 2), ("acme/web", 3)]


def test_searchable_text_covers_all_fields(make_pr) -> None:
    pr = make_pr("acme/web", 3, title="Update React", labels=("Frontend", "deps"), version="1 -> 2")
    text = searchable_text(pr)
    for part in ("web", "update react", "renovate", "frontend deps", "1 -> 2"):
        assert part in text
    # Owner is not searchable
    assert "acme" not in text


def test_empty_query_returns_same_list(prs) -> None:
    assert filter_prs(prs, "") is prs


def test_set_all_then_empty_query_recovers_identity(prs) -> None:
    model = ListModel(prs)
    model.set_query("bump")
    model.set_query("")
    assert model.visible is model.all


def test_query_matches_bot_name_case_insensitively(prs) -> None:
    model = ListModel(prs)
    model.set_query("RENOVATE")
    assert [p.key for p in model.visible] == [("acme/web", 3)]


def test_query_preserves_order_from_all(prs) -> None:
    model = ListModel(prs)
    model.set_query("bump")
    assert [p.number for p in model.visible] == [1, 4]


@pytest.mark.parametrize("query", ["u", "up", "upd", "update", "update r", "bump", "se", "sec"])
def test_longer_queries_only_narrow(prs, query: str) -> None:
    prs = sort_by_repo(prs)
    for end in range(1, len(query) + 1):
        shorter = filter_prs(prs, query[: end - 1])
        longer = filter_prs(prs, query[:end])
        assert set(p.key for p in longer) <= set(p.key for p in shorter)


def test_remove_drops_item_from_both_collections(prs) -> None:
    model = ListModel(prs)
    model.set_query("bump")
    assert model.remove(("acme/api", 1))
    assert ("acme/api", 1) not in model
    assert [p.number for p in model.visible] == [4]
    assert all(p.key != ("acme/api", 1) for p in model.all)
    assert not model.remove(("acme/api", 1))


def test_removing_last_selected_item_clamps_cursor(prs) -> None:
    model = ListModel(prs)
    model.move(10)
    assert model.cursor == 3
    selected = model.selected()
    assert selected is not None
    model.remove(selected.key)
    assert model.cursor == 2


def test_remove_everything_leaves_no_selection(make_pr) -> None:
    model = ListModel([make_pr("acme/api", 1)])
    model.remove(("acme/api", 1))
    assert model.cursor == 0
    assert model.selected() is None


def test_replace_keeps_position(prs, make_pr) -> None:
    model = ListModel(prs)
    updated = make_pr("acme/ci", 2, title="Update actions/checkout", mergeable=MergeableState.CONFLICTING)
    assert model.replace(updated)
    assert model.all[2] is updated
    assert not model.replace(make_pr("acme/zzz", 99))


def test_set_all_restores_sort_and_reapplies_query(prs) -> None:
    model = ListModel()
    model.set_query("api")
    model.set_all(list(reversed(prs)))
    assert [p.repo_name for p in model.all] == ["api", "api", "ci", "web"]
    assert [p.number for p in model.visible] == [4, 1]


@pytest.mark.parametrize("seed", range(20))
def test_cursor_stays_in_bounds_under_random_operations(prs, seed: int) -> None:
    rng = random.Random(seed)
    model = ListModel(prs)
    for _ in range(200):
        op = rng.choice(["up", "down", "query", "remove", "reset"])
        if op == "up":
            model.move(-1)
        elif op == "down":
            model.move(1)
        elif op == "query":
            model.set_query(rng.choice(["", "a", "bump", "update", "zzz", "ci"]))
        elif op == "remove" and model.visible:
            model.remove(rng.choice(model.visible).key)
        elif op == "reset":
            model.set_all(prs)
        assert 0 <= model.cursor < max(1, len(model.visible))
        if not model.visible:
            assert model.cursor == 0
