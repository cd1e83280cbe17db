"""
Unit tests for structured logging helpers.
"""

import logging
from unittest.mock import patch

import pytest

from agent_orchestrator.orchestration.orchestrator import AgentOrchestrator
from agent_orchestrator.utils.config import OrchestrationConfig
from agent_orchestrator.utils.logging import (
    LoggerMixin, configure_logging, resolve_log_level
)


class Component(LoggerMixin):
    pass


class TestLogLevels:

    def test_resolve_known_levels(self):
        assert resolve_log_level("debug") == logging.DEBUG
        assert resolve_log_level("WARNING") == logging.WARNING

    def test_unknown_level_is_rejected(self):
        with pytest.raises(ValueError, match="LOUD"):
            resolve_log_level("LOUD")

    def test_configure_logging_rejects_unknown_level(self):
        with patch("agent_orchestrator.utils.logging.structlog.configure") as configure:
            with pytest.raises(ValueError):
                configure_logging("nope")
        configure.assert_not_called()


class TestLoggerMixin:

    def test_execution_logger_binds_ids(self):
        component = Component()
        with patch.object(Component, "logger") as logger:
            component.execution_logger("e1", "t1", attempt=2)
        logger.bind.assert_called_once_with(execution_id="e1", task_id="t1", attempt=2)

    def test_execution_logger_without_task(self):
        component = Component()
        with patch.object(Component, "logger") as logger:
            component.execution_logger("e1")
        logger.bind.assert_called_once_with(execution_id="e1")


class TestOrchestratorLeavesLoggingAlone:

    @pytest.mark.asyncio
    async def test_constructing_orchestrator_does_not_configure_logging(self):
        with patch("agent_orchestrator.utils.logging.structlog.configure") as configure:
            orchestrator = AgentOrchestrator(OrchestrationConfig(log_level="ERROR", json_logging=True))
        try:
            configure.assert_not_called()
        finally:
            await orchestrator.shutdown()
