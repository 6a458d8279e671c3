import json

import requests

from papershelf.presentation.cli import main as cli_main


class _DummyResponse:
    status_code = 200
    headers = {"Content-Type": "application/pdf"}

    def raise_for_status(self) -> None:
        return None

    def iter_content(self, chunk_size=1):
        yield b"%PDF-1.4"

    def close(self) -> None:
        return None


def _run(root, *args):
    return cli_main.run_cli(["--root", str(root), *args])


def test_cli_fetch_parser_flags():
    parser = cli_main.create_parser()
    args = parser.parse_args(
        [
            "fetch",
            "https://arxiv.org/abs/1706.03762",
            "--name",
            "attention.pdf",
            "-t",
            "new",
            "-t",
            "nlp",
            "-l",
            "year=2017",
            "-a",
            "Ashish Vaswani",
            "--skip-existing",
            "--json",
        ]
    )

    assert args.command == "fetch"
    assert args.urls == ["https://arxiv.org/abs/1706.03762"]
    assert args.name == "attention.pdf"
    assert args.tags == ["new", "nlp"]
    assert args.labels == ["year=2017"]
    assert args.authors == ["Ashish Vaswani"]
    assert args.skip_existing is True
    assert args.json is True


def test_cli_version(capsys):
    assert cli_main.run_cli(["--version"]) == 0
    assert "papershelf v" in capsys.readouterr().out


def test_cli_requires_initialised_repository(tmp_path, capsys):
    exit_code = _run(tmp_path, "list")
    captured = capsys.readouterr()

    assert exit_code == 1
    assert "error[not_found]" in captured.err


def test_cli_init_twice_is_conflict(tmp_path, capsys):
    assert _run(tmp_path, "init") == 0
    assert (tmp_path / "papers.db").is_file()

    assert _run(tmp_path, "init") == 1
    assert "error[conflict]" in capsys.readouterr().err


def test_cli_add_list_search_round_trip(tmp_path, capsys):
    root = tmp_path / "shelf"
    outside = tmp_path / "kv-store.pdf"
    outside.write_bytes(b"%PDF")
    assert _run(root, "init") == 0

    assert _run(root, "add", str(outside), "--title", "KV store design", "-t", "new", "-l", "year=2022") == 0
    assert (root / "kv-store.pdf").is_file()
    capsys.readouterr()

    assert _run(root, "list", "-t", "new", "--json") == 0
    listed = json.loads(capsys.readouterr().out)
    assert [p["title"] for p in listed] == ["KV store design"]
    assert listed[0]["labels"] == {"year": "2022"}

    assert _run(root, "search", "KV", "--json") == 0
    assert len(json.loads(capsys.readouterr().out)) == 1

    assert _run(root, "search", "kv s", "--json") == 0
    assert json.loads(capsys.readouterr().out) == []


def test_cli_fetch_reports_partial_failure(tmp_path, monkeypatch, capsys):
    def _fake_get(url, headers=None, stream=False, timeout=0):
        if "unreachable" in url:
            raise requests.ConnectionError("unreachable")
        return _DummyResponse()

    monkeypatch.setattr(
        "papershelf.infrastructure.connectors.http_fetcher.requests.get", _fake_get
    )
    assert _run(tmp_path, "init") == 0

    exit_code = _run(
        tmp_path, "fetch", "https://unreachable.invalid/a.pdf", "https://example.com/b.pdf"
    )
    captured = capsys.readouterr()

    assert exit_code == 1
    assert "added paper 1: b.pdf" in captured.out
    assert "error[transport_error]" in captured.err

    assert _run(tmp_path, "list", "--json") == 0
    assert [p["filename"] for p in json.loads(capsys.readouterr().out)] == ["b.pdf"]


def test_cli_metadata_commands(tmp_path, capsys):
    paper_file = tmp_path / "paper.pdf"
    paper_file.write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "add", str(paper_file)) == 0

    assert _run(tmp_path, "tag", "1", "ml", "new") == 0
    assert _run(tmp_path, "tag", "1", "new", "--remove") == 0
    assert _run(tmp_path, "label", "1", "venue=ICLR", "year=2021") == 0
    assert _run(tmp_path, "label", "1", "year=2022") == 0
    assert _run(tmp_path, "label", "1", "--remove", "venue") == 0
    assert _run(tmp_path, "author", "1", "Ada Lovelace") == 0
    assert _run(tmp_path, "update", "1", "--title", "Renamed", "--url", "https://example.com/p") == 0
    capsys.readouterr()

    assert _run(tmp_path, "show", "1", "--json") == 0
    shown = json.loads(capsys.readouterr().out)
    assert shown["title"] == "Renamed"
    assert shown["url"] == "https://example.com/p"
    assert shown["tags"] == ["ml"]
    assert shown["labels"] == {"year": "2022"}
    assert shown["authors"] == ["Ada Lovelace"]


def test_cli_update_clearing_both_references_fails(tmp_path, capsys):
    paper_file = tmp_path / "paper.pdf"
    paper_file.write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "add", str(paper_file)) == 0

    assert _run(tmp_path, "update", "1", "--file", "") == 1
    assert "error[invalid_input]" in capsys.readouterr().err


def test_cli_remove_and_restore(tmp_path, capsys):
    paper_file = tmp_path / "paper.pdf"
    paper_file.write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "add", str(paper_file)) == 0

    assert _run(tmp_path, "remove", "1") == 0
    assert _run(tmp_path, "show", "1") == 1
    assert "error[not_found]" in capsys.readouterr().err

    assert _run(tmp_path, "restore", "1") == 0
    assert _run(tmp_path, "show", "1") == 0

    assert _run(tmp_path, "remove", "1", "--purge") == 0
    assert _run(tmp_path, "show", "1", "--all") == 1


def test_cli_notes_editor_round_trip(tmp_path, monkeypatch, capsys):
    paper_file = tmp_path / "paper.pdf"
    paper_file.write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "add", str(paper_file)) == 0

    monkeypatch.setenv("EDITOR", "sh -c 'printf \"read twice\" > \"$0\"'")
    assert _run(tmp_path, "notes", "1") == 0
    capsys.readouterr()

    assert _run(tmp_path, "notes", "1", "--print") == 0
    assert capsys.readouterr().out.strip() == "read twice"

    monkeypatch.setenv("EDITOR", "false")
    assert _run(tmp_path, "notes", "1") == 1


def test_cli_migrate_reports_head(tmp_path, capsys):
    assert _run(tmp_path, "init") == 0
    capsys.readouterr()

    assert _run(tmp_path, "migrate") == 0
    out = capsys.readouterr().out
    assert "0005_create_notes" in out
    assert "papers: 0 active, 0 total" in out


def test_cli_list_filters(tmp_path, capsys):
    for name in ("attention.pdf", "bert.pdf"):
        (tmp_path / name).write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(
        tmp_path, "add", str(tmp_path / "attention.pdf"),
        "--title", "Attention Is All You Need", "-a", "Ashish Vaswani", "-a", "Noam Shazeer",
        "-l", "year=2017",
    ) == 0
    assert _run(
        tmp_path, "add", str(tmp_path / "bert.pdf"),
        "--title", "BERT", "-a", "Jacob Devlin", "-l", "year=2018",
    ) == 0
    capsys.readouterr()

    def _listed(*flags):
        assert _run(tmp_path, "list", "--json", *flags) == 0
        return [p["id"] for p in json.loads(capsys.readouterr().out)]

    assert _listed("-a", "Noam Shazeer") == [1]
    assert _listed("-a", "Noam Shazeer", "-a", "Jacob Devlin") == []
    assert _listed("-l", "year=2018") == [2]
    assert _listed("--title", "attention") == [1]
    assert _listed("--file", "BERT") == [2]
    assert _listed("-f", ".pdf", "-l", "year=2017") == [1]


def test_cli_author_remove(tmp_path, capsys):
    paper_file = tmp_path / "paper.pdf"
    paper_file.write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "add", str(paper_file), "-a", "Ada Lovelace", "-a", "Alan Turing") == 0

    assert _run(tmp_path, "author", "1", "Ada Lovelace", "--remove") == 0
    assert capsys.readouterr().out.strip().endswith("1: Alan Turing")

    assert _run(tmp_path, "show", "1", "--json") == 0
    assert json.loads(capsys.readouterr().out)["authors"] == ["Alan Turing"]


def test_cli_label_rejects_batch_with_bad_pair(tmp_path, capsys):
    paper_file = tmp_path / "paper.pdf"
    paper_file.write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "add", str(paper_file), "-l", "year=2017") == 0

    assert _run(tmp_path, "label", "1", "venue=ICLR", "=oops", "--remove", "year") == 1
    assert "error[invalid_input]" in capsys.readouterr().err

    assert _run(tmp_path, "show", "1", "--json") == 0
    assert json.loads(capsys.readouterr().out)["labels"] == {"year": "2017"}


def test_cli_remove_with_file_deletes_unshared_file(tmp_path, capsys):
    paper_file = tmp_path / "paper.pdf"
    paper_file.write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "add", str(paper_file)) == 0
    capsys.readouterr()

    assert _run(tmp_path, "remove", "1", "--with-file") == 0

    assert "deleted file paper.pdf" in capsys.readouterr().out
    assert not paper_file.exists()


def test_cli_remove_with_file_keeps_shared_file(tmp_path, capsys):
    paper_file = tmp_path / "paper.pdf"
    paper_file.write_bytes(b"%PDF")
    assert _run(tmp_path, "init") == 0
    assert _run(tmp_path, "add", str(paper_file)) == 0
    assert _run(tmp_path, "add", str(paper_file)) == 0
    capsys.readouterr()

    assert _run(tmp_path, "remove", "1", "--purge", "--with-file") == 0

    assert "kept paper.pdf: still used by paper 2" in capsys.readouterr().out
    assert paper_file.exists()
