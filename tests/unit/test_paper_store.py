from __future__ import annotations

import time

import pytest
from sqlalchemy import func, select

from papershelf.domain.errors import InvalidInput, NotFound, StoreError
from papershelf.domain.paper import PaperState
from papershelf.infrastructure.stores.models import LabelModel, PaperModel, TagModel


def _count(store, stmt) -> int:
    with store._provider.session() as session:
        return int(session.execute(stmt).scalar_one())


def test_create_paper_requires_url_or_filename(store):
    with pytest.raises(InvalidInput):
        store.create_paper()
    with pytest.raises(InvalidInput):
        store.create_paper(url="   ", filename="")

    assert store.count(include_deleted=True) == 0


def test_create_paper_sets_timestamps_and_children(store):
    paper = store.create_paper(
        url="https://arxiv.org/abs/1706.03762",
        filename="1706.03762.pdf",
        title="Attention Is All You Need",
        tags=["new", "nlp", "new"],
        authors=["Ashish Vaswani"],
        labels={"year": "2017"},
    )

    assert paper.id > 0
    assert paper.state is PaperState.ACTIVE
    assert paper.created_at is not None
    assert paper.created_at == paper.modified_at
    assert paper.tags == {"new", "nlp"}
    assert paper.authors == {"Ashish Vaswani"}
    assert paper.labels == {"year": "2017"}


def test_create_paper_with_only_url_or_only_filename(store):
    remote = store.create_paper(url="https://example.com/a.pdf")
    local = store.create_paper(filename="b.pdf")

    assert remote.filename is None
    assert local.url is None


def test_attach_tags_is_idempotent(store):
    paper = store.create_paper(filename="a.pdf")

    store.attach_tags(paper.id, ["new"])
    store.attach_tags(paper.id, ["new"])

    stmt = select(func.count()).select_from(TagModel).where(
        TagModel.paper_id == paper.id, TagModel.tag == "new"
    )
    assert _count(store, stmt) == 1
    assert store.get(paper.id).tags == {"new"}


def test_attach_tags_unknown_paper_raises_not_found(store):
    with pytest.raises(NotFound):
        store.attach_tags(999, ["new"])


def test_tag_round_trip_ignores_insertion_order(store):
    first = store.create_paper(filename="a.pdf")
    second = store.create_paper(filename="b.pdf")

    store.attach_tags(first.id, ["a", "b"])
    store.attach_tags(second.id, ["b", "a"])

    assert store.get(first.id).tags == {"a", "b"}
    assert store.get(second.id).tags == {"a", "b"}


def test_detach_tags(store):
    paper = store.create_paper(filename="a.pdf", tags=["a", "b"])

    updated = store.detach_tags(paper.id, ["a", "missing"])

    assert updated.tags == {"b"}


def test_set_label_overwrites_single_value_per_key(store):
    paper = store.create_paper(filename="a.pdf")

    store.set_label(paper.id, "year", "2022")
    store.set_label(paper.id, "year", "2023")

    stmt = select(func.count()).select_from(LabelModel).where(
        LabelModel.paper_id == paper.id, LabelModel.label_key == "year"
    )
    assert _count(store, stmt) == 1
    assert store.get(paper.id).labels == {"year": "2023"}


def test_set_label_touches_modified_at(store):
    paper = store.create_paper(filename="a.pdf")
    time.sleep(0.01)

    updated = store.set_label(paper.id, "venue", "NeurIPS")

    assert updated.modified_at > paper.modified_at
    assert updated.created_at == paper.created_at


def test_set_label_rejects_empty_key(store):
    paper = store.create_paper(filename="a.pdf")
    with pytest.raises(InvalidInput):
        store.set_label(paper.id, " ", "x")


def test_remove_label(store):
    paper = store.create_paper(filename="a.pdf", labels={"year": "2022", "venue": "ICLR"})

    updated = store.remove_label(paper.id, "year")

    assert updated.labels == {"venue": "ICLR"}


def test_attach_authors_is_idempotent(store):
    paper = store.create_paper(filename="a.pdf", authors=["Noam Shazeer"])

    updated = store.attach_authors(paper.id, ["Noam Shazeer", "Ashish Vaswani"])

    assert updated.authors == {"Noam Shazeer", "Ashish Vaswani"}


def test_update_paper_changes_only_given_fields(store):
    paper = store.create_paper(url="https://example.com/a.pdf", filename="a.pdf", title="Old")
    time.sleep(0.01)

    updated = store.update_paper(paper.id, title="New")

    assert updated.title == "New"
    assert updated.url == "https://example.com/a.pdf"
    assert updated.filename == "a.pdf"
    assert updated.modified_at > paper.modified_at


def test_update_paper_can_clear_one_reference_but_not_both(store):
    paper = store.create_paper(url="https://example.com/a.pdf", filename="a.pdf")

    cleared = store.update_paper(paper.id, url=None)
    assert cleared.url is None

    with pytest.raises(InvalidInput):
        store.update_paper(paper.id, filename="")


def test_update_paper_missing_or_deleted_raises_not_found(store):
    paper = store.create_paper(filename="a.pdf")
    store.soft_delete(paper.id)

    with pytest.raises(NotFound):
        store.update_paper(paper.id, title="x")
    with pytest.raises(NotFound):
        store.update_paper(12345, title="x")


def test_soft_delete_hides_paper_and_is_idempotent(store):
    kept = store.create_paper(filename="a.pdf")
    gone = store.create_paper(filename="b.pdf")

    store.soft_delete(gone.id)
    again = store.soft_delete(gone.id)

    assert again.deleted is True
    assert [p.id for p in store.list_papers()] == [kept.id]
    assert [p.id for p in store.list_papers(include_deleted=True)] == [kept.id, gone.id]

    with pytest.raises(NotFound):
        store.get(gone.id)
    assert store.get(gone.id, include_deleted=True).state is PaperState.DELETED


def test_restore_undoes_soft_delete(store):
    paper = store.create_paper(filename="a.pdf", tags=["new"])
    store.soft_delete(paper.id)

    restored = store.restore(paper.id)

    assert restored.state is PaperState.ACTIVE
    assert store.get(paper.id).tags == {"new"}


def test_hard_delete_cascades_children(store):
    paper = store.create_paper(
        filename="a.pdf", tags=["a"], authors=["X"], labels={"k": "v"}
    )
    store.set_note(paper.id, "some notes")

    store.hard_delete(paper.id)

    assert _count(store, select(func.count()).select_from(PaperModel)) == 0
    assert _count(store, select(func.count()).select_from(TagModel)) == 0
    with pytest.raises(NotFound):
        store.get(paper.id, include_deleted=True)


def test_list_papers_filters_by_all_tags_in_id_order(store):
    a = store.create_paper(filename="a.pdf", tags=["new", "ml"])
    b = store.create_paper(filename="b.pdf", tags=["new"])
    c = store.create_paper(filename="c.pdf", tags=["ml"])
    d = store.create_paper(filename="d.pdf", tags=["new"])
    store.soft_delete(d.id)

    assert [p.id for p in store.list_papers(["new"])] == [a.id, b.id]
    assert [p.id for p in store.list_papers({"new", "ml"})] == [a.id]
    assert [p.id for p in store.list_papers([])] == [a.id, b.id, c.id]
    assert [p.id for p in store.list_papers(["new"], include_deleted=True)] == [a.id, b.id, d.id]


def test_notes_round_trip(store):
    paper = store.create_paper(filename="a.pdf")
    assert store.get_note(paper.id) == ""

    store.set_note(paper.id, "first")
    store.set_note(paper.id, "second")

    assert store.get_note(paper.id) == "second"
    assert store.get(paper.id).has_notes


def test_find_by_url(store):
    first = store.create_paper(url="https://example.com/a.pdf", filename="a.pdf")
    second = store.create_paper(url="https://example.com/a.pdf", filename="a-2.pdf")

    found = store.find_by_url("https://example.com/a.pdf")

    assert [p.id for p in found] == [first.id, second.id]


def test_foreign_key_violation_surfaces_as_store_error(store):
    with pytest.raises(StoreError):
        with store._provider.session() as session:
            session.add(TagModel(paper_id=424242, tag="orphan"))
            session.commit()


def test_check_constraint_surfaces_as_store_error(store):
    from datetime import datetime, timezone

    now = datetime.now(timezone.utc)
    with pytest.raises(StoreError):
        with store._provider.session() as session:
            session.add(PaperModel(url=None, filename=None, created_at=now, modified_at=now))
            session.commit()


def test_detach_authors(store):
    paper = store.create_paper(filename="a.pdf", authors=["Noam Shazeer", "Ashish Vaswani"])
    time.sleep(0.01)

    updated = store.detach_authors(paper.id, ["Noam Shazeer", "Nobody"])

    assert updated.authors == {"Ashish Vaswani"}
    assert updated.modified_at > paper.modified_at

    with pytest.raises(NotFound):
        store.detach_authors(999, ["X"])


@pytest.mark.parametrize(
    "change",
    [
        lambda s, pid: s.attach_tags(pid, ["fresh"]),
        lambda s, pid: s.detach_tags(pid, ["old"]),
        lambda s, pid: s.attach_authors(pid, ["Ada Lovelace"]),
        lambda s, pid: s.detach_authors(pid, ["Alan Turing"]),
        lambda s, pid: s.set_labels(pid, {"venue": "ICML"}),
        lambda s, pid: s.remove_label(pid, "year"),
        lambda s, pid: s.set_note(pid, "read again"),
        lambda s, pid: s.update_paper(pid, title="Renamed"),
        lambda s, pid: s.soft_delete(pid),
    ],
    ids=[
        "attach_tags",
        "detach_tags",
        "attach_authors",
        "detach_authors",
        "set_labels",
        "remove_label",
        "set_note",
        "update_paper",
        "soft_delete",
    ],
)
def test_mutations_advance_modified_at(store, change):
    paper = store.create_paper(
        filename="a.pdf", tags=["old"], authors=["Alan Turing"], labels={"year": "1950"}
    )
    time.sleep(0.01)

    change(store, paper.id)

    after = store.get(paper.id, include_deleted=True)
    assert after.modified_at > paper.modified_at
    assert after.created_at == paper.created_at


@pytest.mark.parametrize(
    "change",
    [
        lambda s, pid: s.attach_tags(pid, ["old"]),
        lambda s, pid: s.detach_tags(pid, ["missing"]),
        lambda s, pid: s.attach_authors(pid, ["Alan Turing"]),
        lambda s, pid: s.detach_authors(pid, ["Nobody"]),
        lambda s, pid: s.remove_label(pid, "missing"),
        lambda s, pid: s.set_labels(pid, {}, remove=["missing"]),
    ],
    ids=[
        "reattach_tag",
        "detach_absent_tag",
        "reattach_author",
        "detach_absent_author",
        "remove_absent_label",
        "set_labels_noop",
    ],
)
def test_noop_mutations_keep_modified_at(store, change):
    paper = store.create_paper(
        filename="a.pdf", tags=["old"], authors=["Alan Turing"], labels={"year": "1950"}
    )
    time.sleep(0.01)

    change(store, paper.id)

    assert store.get(paper.id).modified_at == paper.modified_at


def test_set_labels_applies_sets_and_removals_together(store):
    paper = store.create_paper(filename="a.pdf", labels={"year": "2017", "venue": "ICLR"})

    updated = store.set_labels(
        paper.id, {"venue": "NeurIPS", "topic": "nlp", "year": "2018"}, remove=["year"]
    )

    assert updated.labels == {"venue": "NeurIPS", "topic": "nlp"}


def test_set_labels_with_bad_key_changes_nothing(store):
    paper = store.create_paper(filename="a.pdf", labels={"year": "2017"})

    with pytest.raises(InvalidInput):
        store.set_labels(paper.id, {"venue": "NeurIPS", " ": "x"}, remove=["year"])

    after = store.get(paper.id)
    assert after.labels == {"year": "2017"}
    assert after.modified_at == paper.modified_at


def test_list_papers_filters_by_authors_and_labels(store):
    a = store.create_paper(filename="a.pdf", authors=["X", "Y"], labels={"year": "2017"})
    b = store.create_paper(filename="b.pdf", authors=["X"], labels={"year": "2018"})
    c = store.create_paper(filename="c.pdf", authors=["Y"], labels={"year": "2017", "v": "1"})

    assert [p.id for p in store.list_papers(authors=["X"])] == [a.id, b.id]
    assert [p.id for p in store.list_papers(authors=["X", "Y"])] == [a.id]
    assert [p.id for p in store.list_papers(labels={"year": "2017"})] == [a.id, c.id]
    assert [p.id for p in store.list_papers(labels={"year": "2017", "v": "1"})] == [c.id]
    assert store.list_papers(labels={"year": "2019"}) == []
    assert [p.id for p in store.list_papers(["missing"], authors=["X"])] == []


def test_list_papers_title_and_file_filters_ignore_case(store):
    a = store.create_paper(filename="Attention.pdf", title="Attention Is All You Need")
    b = store.create_paper(filename="bert.pdf", title="BERT: Pre-training")
    store.create_paper(url="https://example.com/x")

    assert [p.id for p in store.list_papers(title="attention")] == [a.id]
    assert [p.id for p in store.list_papers(title="PRE-TRAIN")] == [b.id]
    assert [p.id for p in store.list_papers(file="ATTENTION")] == [a.id]
    assert [p.id for p in store.list_papers(file=".pdf")] == [a.id, b.id]
    assert store.list_papers(file="_") == []
