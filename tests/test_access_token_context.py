import threading

import pytest

from svcutils.access_token_context import (
    access_token_subject,
    current_access_token_subject,
)


def test_no_subject_outside_block():
    assert current_access_token_subject() is None


def test_subject_inside_block():
    with access_token_subject("subject-1") as subject:
        assert subject == "subject-1"
        assert current_access_token_subject() == "subject-1"
    assert current_access_token_subject() is None


def test_nested_blocks_restore_outer_subject():
    with access_token_subject("outer"):
        with access_token_subject("inner"):
            assert current_access_token_subject() == "inner"
        assert current_access_token_subject() == "outer"


def test_subject_reset_after_exception():
    with pytest.raises(RuntimeError):
        with access_token_subject("failing"):
            raise RuntimeError("boom")
    assert current_access_token_subject() is None


def test_other_thread_does_not_see_subject():
    seen = []
    with access_token_subject("main-thread"):
        worker = threading.Thread(target=lambda: seen.append(current_access_token_subject()))
        worker.start()
        worker.join()
        assert current_access_token_subject() == "main-thread"
    assert seen == [None]