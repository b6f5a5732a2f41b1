from signlayout.history import HistoryStack


def test_undo_redo_walks_the_snapshots():
    history = HistoryStack("a")
    history.record("b")
    history.record("c")
    assert history.undo() == "b"
    assert history.undo() == "a"
    assert history.undo() is None
    assert history.redo() == "b"
    assert history.redo() == "c"
    assert history.redo() is None


def test_record_after_undo_drops_redo_branch():
    history = HistoryStack("a")
    history.record("b")
    history.record("c")
    history.undo()
    history.record("d")
    assert len(history) == 3
    assert not history.can_redo
    assert history.undo() == "b"
    assert history.redo() == "d"


def test_restoring_does_not_record():
    history = HistoryStack("a")
    history.record("b")
    snapshot = history.undo()
    with history.restoring():
        assert history.is_restoring
        assert history.record(snapshot) is False
    assert not history.is_restoring
    assert len(history) == 2
    assert history.current == "a"
    assert history.can_redo


def test_empty_and_reset():
    history = HistoryStack()
    assert history.current is None
    assert not history.can_undo
    history.record("a")
    history.record("b")
    history.reset("saved")
    assert len(history) == 1
    assert history.index == 0
    assert history.current == "saved"
    assert not history.can_undo
