import logging

import pytest

from trust_safety.logging.logger import Log


class TestLog:
    def test_renders_context_as_key_value_pairs(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="trust_safety"):
            Log.info("Submission accepted", submission_id="sub-1", kind="listing")

        assert "Submission accepted submission_id=sub-1 kind=listing" in caplog.text

    def test_message_without_context_is_unchanged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="trust_safety"):
            Log.warning("No providers produced a result")

        assert caplog.records[-1].getMessage() == "No providers produced a result"

    def test_debug_suppressed_above_level(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="trust_safety"):
            Log.debug("hidden", item_id=1)

        assert "hidden" not in caplog.text

    def test_exception_includes_traceback(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="trust_safety"):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                Log.exception("Analysis crashed", submission_id="sub-9")

        assert "RuntimeError: boom" in caplog.text
