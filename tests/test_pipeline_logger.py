#!/usr/bin/env python3
"""Unit tests for pipeline logger."""

import logging
from unittest.mock import MagicMock, patch

from acpied.utils.pipeline_logger import PipelineLogger, get_pipeline_logger


class TestPipelineLogger:
    """Test PipelineLogger class."""

    def test_initialization(self):
        logger = logging.getLogger("test")
        pipeline_logger = PipelineLogger(logger)

        assert pipeline_logger.logger == logger
        assert pipeline_logger.current_stage() is None

    def test_initialization_default_logger(self):
        assert PipelineLogger().logger is not None

    @patch("acpied.utils.pipeline_logger.log_info_safe")
    def test_info_maps_stage_prefix(self, mock_log_info):
        """Lower-case stage names resolve to their display prefix."""
        mock_logger = MagicMock()
        PipelineLogger(mock_logger).info("Compiled {id}", prefix="asm", id="DSDT")

        mock_log_info.assert_called_once_with(
            mock_logger, "Compiled {id}", prefix="ASM", id="DSDT"
        )

    @patch("acpied.utils.pipeline_logger.log_warning_safe")
    def test_unknown_prefix_passes_through(self, mock_log_warning):
        mock_logger = MagicMock()
        PipelineLogger(mock_logger).warning("Odd", prefix="CUSTOM")

        mock_log_warning.assert_called_once_with(mock_logger, "Odd", prefix="CUSTOM")

    @patch("acpied.utils.pipeline_logger.log_error_safe")
    def test_error_defaults_to_apply(self, mock_log_error):
        mock_logger = MagicMock()
        PipelineLogger(mock_logger).error("Broken")

        mock_log_error.assert_called_once_with(mock_logger, "Broken", prefix="APPLY")

    @patch("acpied.utils.pipeline_logger.log_debug_safe")
    def test_debug(self, mock_log_debug):
        mock_logger = MagicMock()
        PipelineLogger(mock_logger).debug("Detail", prefix="shell")

        mock_log_debug.assert_called_once_with(mock_logger, "Detail", prefix="SHELL")


class TestStageTracking:
    def test_enter_and_leave(self):
        mock_logger = MagicMock()
        pipeline_logger = PipelineLogger(mock_logger)

        pipeline_logger.enter_stage("asm")
        assert pipeline_logger.current_stage() == "asm"
        assert "Starting asm" in mock_logger.info.call_args[0][0]
        assert "[ASM]" in mock_logger.info.call_args[0][0]

        pipeline_logger.leave_stage("asm")
        assert pipeline_logger.current_stage() is None
        mock_logger.warning.assert_not_called()

    def test_nested_stages(self):
        pipeline_logger = PipelineLogger(MagicMock())
        pipeline_logger.enter_stage("apply")
        pipeline_logger.enter_stage("initrd")

        assert pipeline_logger.current_stage() == "initrd"
        pipeline_logger.leave_stage("initrd")
        assert pipeline_logger.current_stage() == "apply"

    def test_mismatched_leave_warns(self):
        mock_logger = MagicMock()
        pipeline_logger = PipelineLogger(mock_logger)
        pipeline_logger.enter_stage("asm")

        pipeline_logger.leave_stage("boot")

        assert "mismatch" in mock_logger.warning.call_args[0][0]
        assert pipeline_logger.current_stage() == "asm"


def test_get_pipeline_logger():
    logger = logging.getLogger("acpied.test")
    assert get_pipeline_logger(logger).logger is logger
