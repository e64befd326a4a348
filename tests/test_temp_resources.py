from pathlib import Path

from sat_bill_bot.service.temp_resources import TempResourceSet


def test_cleanup_deletes_every_registered_path(tmp_path, orchestrator):
    files = []
    for name in ("a.cer", "b.key", "c.tmp"):
        path = tmp_path / name
        path.write_text("x")
        files.append(path)
    directory = tmp_path / "staging"
    directory.mkdir()
    (directory / "copy.cer").write_text("x")

    resources = TempResourceSet(orchestrator)
    resources.register(*files, directory)
    assert len(resources) == 4

    assert resources.cleanup() == 0
    assert not any(path.exists() for path in files)
    assert not directory.exists()
    assert len(resources) == 0
    assert orchestrator.errors() == ()


def test_cleanup_logs_failures_and_still_empties_the_set(tmp_path, orchestrator):
    present = tmp_path / "present.cer"
    present.write_text("x")
    missing = [tmp_path / "gone.key", tmp_path / "also-gone.cer"]

    resources = TempResourceSet(orchestrator)
    resources.register(missing[0], present, missing[1])

    assert resources.cleanup() == 2
    assert not present.exists()
    assert len(resources) == 0
    assert [entry.context["file_path"] for entry in orchestrator.errors()] == [str(p) for p in missing]


def test_register_keeps_order_without_duplicates(tmp_path):
    resources = TempResourceSet()
    resources.register("b", "a", "b")
    assert list(resources) == ["b", "a"]


def test_second_cleanup_is_a_no_op(tmp_path):
    path = tmp_path / "file.cer"
    path.write_text("x")
    resources = TempResourceSet()
    resources.register(path)

    assert resources.cleanup() == 0
    assert resources.cleanup() == 0
    assert not Path(path).exists()
