"""
CLI entry point.

Translates ``papershelf <command>`` into calls on the ingestion pipeline,
the query service and the paper store of the repository in the current
directory (or ``--root`` / ``PAPERSHELF_ROOT``).
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from dotenv import find_dotenv, load_dotenv

from papershelf import __version__
from papershelf.application.services.ingestion_service import (
    IngestBatchResult,
    IngestionService,
)
from papershelf.application.services.paper_query_service import PaperQueryService
from papershelf.config.settings import Settings
from papershelf.domain.errors import InvalidInput, PapershelfError
from papershelf.domain.paper import Label, Paper
from papershelf.infrastructure.repository import PaperRepository
from papershelf.infrastructure.stores.migrations import current_revision, head_revision
from papershelf.infrastructure.stores.paper_store import UNSET
from papershelf.presentation.cli.external import edit_text, open_path
from papershelf.utils.logging_config import LogFiles, Logger, set_trace_id

# Load a local .env so PAPERSHELF_* settings can live next to the repository.
load_dotenv(find_dotenv(usecwd=True), override=False)


def _add_classification_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--title", help="Title of the paper")
    parser.add_argument(
        "--tag", "-t", action="append", dest="tags", default=None, help="Tag to attach (repeatable)"
    )
    parser.add_argument(
        "--label",
        "-l",
        action="append",
        dest="labels",
        default=None,
        help="Label of the form key=value (repeatable)",
    )
    parser.add_argument(
        "--author",
        "-a",
        action="append",
        dest="authors",
        default=None,
        help="Author name (repeatable)",
    )
    parser.add_argument("--json", action="store_true", help="Print the batch result as JSON")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="papershelf",
        description="papershelf - manage a local repository of academic papers",
    )
    parser.add_argument("--config", "-c", type=Path, help="YAML config file")
    parser.add_argument("--root", "-C", type=Path, help="Repository directory (default: cwd)")
    parser.add_argument("--version", "-v", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init", help="Initialise a new paper repository")

    fetch_parser = subparsers.add_parser("fetch", help="Download papers from urls and add them")
    fetch_parser.add_argument("urls", nargs="+", help="Url(s) to fetch")
    fetch_parser.add_argument(
        "--name", help="File name to save to (single url only); defaults to the url basename"
    )
    fetch_parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Do not fetch urls that are already recorded",
    )
    _add_classification_flags(fetch_parser)

    add_parser = subparsers.add_parser("add", help="Add local files to the repository")
    add_parser.add_argument("files", nargs="+", help="File(s) to add")
    _add_classification_flags(add_parser)

    list_parser = subparsers.add_parser("list", help="List papers")
    list_parser.add_argument(
        "--tag", "-t", action="append", dest="tags", default=None, help="Require this tag"
    )
    list_parser.add_argument(
        "--author", "-a", action="append", dest="authors", default=None, help="Require this author"
    )
    list_parser.add_argument(
        "--label",
        "-l",
        action="append",
        dest="labels",
        default=None,
        help="Require this key=value label",
    )
    list_parser.add_argument("--title", help="Title contains this (case-insensitive)")
    list_parser.add_argument("--file", "-f", help="File name contains this (case-insensitive)")
    list_parser.add_argument("--all", action="store_true", help="Include deleted papers")
    list_parser.add_argument("--json", action="store_true", help="Print JSON")

    search_parser = subparsers.add_parser(
        "search", help="Case-sensitive substring search over paper metadata and notes"
    )
    search_parser.add_argument("text", help="Literal text to look for")
    search_parser.add_argument("--json", action="store_true", help="Print JSON")

    show_parser = subparsers.add_parser("show", help="Show one paper")
    show_parser.add_argument("paper_id", type=int)
    show_parser.add_argument("--all", action="store_true", help="Allow deleted papers")
    show_parser.add_argument("--json", action="store_true", help="Print JSON")

    update_parser = subparsers.add_parser(
        "update", help="Update paper metadata (an empty value clears the field)"
    )
    update_parser.add_argument("paper_id", type=int)
    update_parser.add_argument("--title")
    update_parser.add_argument("--url", "-u")
    update_parser.add_argument("--file", "-f", help="File inside the repository")

    tag_parser = subparsers.add_parser("tag", help="Attach (or remove) tags")
    tag_parser.add_argument("paper_id", type=int)
    tag_parser.add_argument("tags", nargs="+")
    tag_parser.add_argument("--remove", action="store_true", help="Remove the tags instead")

    label_parser = subparsers.add_parser("label", help="Set or remove labels")
    label_parser.add_argument("paper_id", type=int)
    label_parser.add_argument("labels", nargs="*", help="key=value pairs to set")
    label_parser.add_argument(
        "--remove", action="append", dest="remove_keys", default=None, help="Key to remove"
    )

    author_parser = subparsers.add_parser("author", help="Attach (or remove) authors")
    author_parser.add_argument("paper_id", type=int)
    author_parser.add_argument("authors", nargs="+")
    author_parser.add_argument("--remove", action="store_true", help="Remove the authors instead")

    notes_parser = subparsers.add_parser("notes", help="Edit the notes of a paper in $EDITOR")
    notes_parser.add_argument("paper_id", type=int)
    notes_parser.add_argument("--print", action="store_true", help="Print instead of editing")

    open_parser = subparsers.add_parser("open", help="Open the paper file (or url)")
    open_parser.add_argument("paper_id", type=int)

    remove_parser = subparsers.add_parser("remove", help="Mark a paper as deleted")
    remove_parser.add_argument("paper_id", type=int)
    remove_parser.add_argument(
        "--purge", action="store_true", help="Delete the row and its tags/labels/authors/notes"
    )
    remove_parser.add_argument(
        "--with-file",
        action="store_true",
        help="Also delete the stored file unless another paper still uses it",
    )

    restore_parser = subparsers.add_parser("restore", help="Undo a remove")
    restore_parser.add_argument("paper_id", type=int)

    subparsers.add_parser("migrate", help="Bring the database schema up to date")

    return parser


def build_settings(parsed: argparse.Namespace) -> Settings:
    settings = Settings.from_env(parsed.config)
    if parsed.root:
        settings = settings.with_root(parsed.root)
    return settings


def run_cli(args: Optional[List[str]] = None) -> int:
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.version:
        print(f"papershelf v{__version__}")
        return 0

    if not parsed.command:
        parser.print_help()
        return 0

    try:
        settings = build_settings(parsed)
        Logger.init(
            level=settings.log_level, base_dir=str(settings.state_dir / "logs"), force=True
        )
        set_trace_id()
        Logger.info(f"papershelf {parsed.command} in {settings.root}", file=LogFiles.CLI)

        if parsed.command == "init":
            with PaperRepository.init(settings) as repo:
                print(f"Initialised paper repository in {repo.root}")
            return 0

        with PaperRepository.load(settings) as repo:
            handler = _HANDLERS[parsed.command]
            return handler(repo, parsed)

    except PapershelfError as e:
        Logger.error(f"{parsed.command} failed [{e.kind}]: {e}", file=LogFiles.CLI)
        print(f"error[{e.kind}]: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        Logger.error(f"{parsed.command} crashed: {e!r}", file=LogFiles.CLI)
        print(f"Error: {e}", file=sys.stderr)
        return 1


# ----------------------------------------------------------------------
# Output helpers
# ----------------------------------------------------------------------


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _format_row(paper: Paper) -> str:
    parts = [f"{paper.id:>4}", paper.display_title()]
    if paper.tags:
        parts.append("#" + " #".join(sorted(paper.tags)))
    if paper.labels:
        parts.append(" ".join(str(label) for label in paper.label_list()))
    if paper.deleted:
        parts.append("(deleted)")
    return "  ".join(parts)


def _print_papers(papers: List[Paper], as_json: bool) -> None:
    if as_json:
        _print_json([p.to_dict() for p in papers])
        return
    for paper in papers:
        print(_format_row(paper))


def _print_paper(paper: Paper) -> None:
    print(f"id:        {paper.id}")
    print(f"title:     {paper.title or ''}")
    print(f"url:       {paper.url or ''}")
    print(f"filename:  {paper.filename or ''}")
    print(f"state:     {paper.state.value}")
    print(f"tags:      {', '.join(sorted(paper.tags))}")
    print(f"labels:    {', '.join(str(label) for label in paper.label_list())}")
    print(f"authors:   {', '.join(sorted(paper.authors))}")
    print(f"created:   {paper.created_at.isoformat() if paper.created_at else ''}")
    print(f"modified:  {paper.modified_at.isoformat() if paper.modified_at else ''}")
    if paper.has_notes:
        print("")
        print(paper.notes.rstrip())


def _parse_labels(values: Optional[Iterable[str]]) -> Dict[str, str]:
    labels: Dict[str, str] = {}
    for raw in values or []:
        label = Label.parse(raw)
        labels[label.key] = label.value
    return labels


def _report_batch(result: IngestBatchResult, as_json: bool) -> int:
    if as_json:
        _print_json(result.to_dict())
    else:
        for outcome in result.outcomes:
            if outcome.skipped and outcome.paper:
                print(f"skipped {outcome.source}: already paper {outcome.paper.id}")
            elif outcome.ok and outcome.paper:
                print(f"added paper {outcome.paper.id}: {outcome.paper.filename}")
            elif outcome.error:
                print(
                    f"error[{outcome.error.kind}]: {outcome.source}: {outcome.error}",
                    file=sys.stderr,
                )
    return 0 if result.failed == 0 else 1


# ----------------------------------------------------------------------
# Command handlers
# ----------------------------------------------------------------------


def _run_fetch(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    result = IngestionService(repo).ingest_many(
        parsed.urls,
        title=parsed.title,
        tags=parsed.tags or [],
        authors=parsed.authors or [],
        labels=_parse_labels(parsed.labels),
        name=parsed.name,
        skip_existing=parsed.skip_existing,
    )
    return _report_batch(result, parsed.json)


def _run_add(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    result = IngestionService(repo).ingest_many(
        parsed.files,
        title=parsed.title,
        tags=parsed.tags or [],
        authors=parsed.authors or [],
        labels=_parse_labels(parsed.labels),
    )
    return _report_batch(result, parsed.json)


def _run_list(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    papers = PaperQueryService(repo.store).list(
        parsed.tags,
        authors=parsed.authors,
        labels=_parse_labels(parsed.labels),
        title=parsed.title,
        file=parsed.file,
        include_deleted=parsed.all,
    )
    _print_papers(papers, parsed.json)
    return 0


def _run_search(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    papers = PaperQueryService(repo.store).search(parsed.text)
    _print_papers(papers, parsed.json)
    return 0


def _run_show(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    paper = PaperQueryService(repo.store).get(parsed.paper_id, include_deleted=parsed.all)
    if parsed.json:
        payload = paper.to_dict()
        payload["notes"] = paper.notes
        _print_json(payload)
    else:
        _print_paper(paper)
    return 0


def _run_update(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    filename: Any = UNSET
    if parsed.file:
        path = Path(parsed.file).expanduser()
        filename = repo.relative_filename(path if path.is_absolute() else repo.root / path)
    elif parsed.file is not None:
        filename = None
    paper = repo.store.update_paper(
        parsed.paper_id,
        title=UNSET if parsed.title is None else parsed.title,
        url=UNSET if parsed.url is None else parsed.url,
        filename=filename,
    )
    print(f"updated paper {paper.id}")
    return 0


def _run_tag(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    if parsed.remove:
        paper = repo.store.detach_tags(parsed.paper_id, parsed.tags)
    else:
        paper = repo.store.attach_tags(parsed.paper_id, parsed.tags)
    print(_format_row(paper))
    return 0


def _run_label(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    labels = _parse_labels(parsed.labels)
    if not labels and not parsed.remove_keys:
        raise InvalidInput("give at least one key=value label or --remove KEY")
    paper = repo.store.set_labels(parsed.paper_id, labels, remove=parsed.remove_keys or [])
    print(_format_row(paper))
    return 0


def _run_author(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    if parsed.remove:
        paper = repo.store.detach_authors(parsed.paper_id, parsed.authors)
    else:
        paper = repo.store.attach_authors(parsed.paper_id, parsed.authors)
    print(f"{paper.id}: {', '.join(sorted(paper.authors))}")
    return 0


def _run_notes(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    current = repo.store.get_note(parsed.paper_id)
    if parsed.print:
        print(current)
        return 0

    edited = edit_text(
        current, editor=repo.settings.editor, prefix=f"papershelf-{parsed.paper_id}-"
    )
    if edited is None:
        print("editor exited with an error, notes not saved", file=sys.stderr)
        return 1
    if edited != current:
        repo.store.set_note(parsed.paper_id, edited)
        print(f"saved notes for paper {parsed.paper_id}")
    return 0


def _run_open(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    paper = repo.store.get(parsed.paper_id)
    path = repo.file_path(paper.filename)
    if path is not None and path.exists():
        target = str(path)
    elif paper.url:
        target = paper.url
    else:
        raise InvalidInput(f"paper {paper.id} has no file on disk and no url")
    return 0 if open_path(target) == 0 else 1


def _run_remove(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    paper = repo.store.get(parsed.paper_id, include_deleted=True)
    if parsed.purge:
        repo.store.hard_delete(parsed.paper_id)
        print(f"purged paper {parsed.paper_id}")
    else:
        repo.store.soft_delete(parsed.paper_id)
        print(f"removed paper {parsed.paper_id}")

    if parsed.with_file and paper.filename:
        _remove_unshared_file(repo, paper)
    return 0


def _remove_unshared_file(repo: PaperRepository, paper: Paper) -> None:
    users = [
        p
        for p in repo.store.list_papers(file=paper.filename)
        if p.filename == paper.filename and p.id != paper.id
    ]
    if users:
        print(f"kept {paper.filename}: still used by paper {users[0].id}")
        return
    path = repo.file_path(paper.filename)
    if path is not None and path.is_file():
        path.unlink()
        Logger.info(f"Deleted file {path} of paper {paper.id}", file=LogFiles.CLI)
        print(f"deleted file {paper.filename}")


def _run_restore(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    paper = repo.store.restore(parsed.paper_id)
    print(f"restored paper {paper.id}")
    return 0


def _run_migrate(repo: PaperRepository, parsed: argparse.Namespace) -> int:
    # load() already migrated; report where the store ended up
    print(f"schema revision: {current_revision(repo.store.db_url)} (head {head_revision()})")
    print(
        f"papers: {repo.store.count()} active, "
        f"{repo.store.count(include_deleted=True)} total"
    )
    return 0


_HANDLERS = {
    "fetch": _run_fetch,
    "add": _run_add,
    "list": _run_list,
    "search": _run_search,
    "show": _run_show,
    "update": _run_update,
    "tag": _run_tag,
    "label": _run_label,
    "author": _run_author,
    "notes": _run_notes,
    "open": _run_open,
    "remove": _run_remove,
    "restore": _run_restore,
    "migrate": _run_migrate,
}


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
