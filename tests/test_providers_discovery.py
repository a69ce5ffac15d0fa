# FILE: tests/test_providers_discovery.py
"""
Tests for helm/providers/discovery.py
Version extraction, best-match selection and catalog republishing.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import asyncio

import pytest

from helm.llm.catalog import CatalogHolder
from helm.llm.model_families import get_family
from helm.llm.schemas import Provider
from helm.providers.discovery import ModelDiscoveryService, extract_version, find_best_match


class TestVersionParsing:
    """Version numbers from model ids."""

    @pytest.mark.parametrize("model_id,version", [
        ("gemini-2.5-pro", 2.5),
        ("gpt-5-nano", 5.0),
        ("claude-sonnet-4-5", 4.5),
        ("claude-sonnet-4-5-20250514", 4.5),
        ("claude-sonnet-4-20250514", 4.0),
        ("gpt-4.1-mini", 4.1),
        ("no-digits-here", 0.0),
    ])
    def test_extract_version(self, model_id, version):
        assert extract_version(model_id) == version


class TestBestMatch:
    """Newest version wins; ties prefer the undated id."""

    def test_highest_version(self):
        ids = ["gemini-1.5-pro", "gemini-2.5-pro", "gemini-2.0-flash", "gemini-3.0-pro-preview"]
        assert find_best_match(ids, get_family("gemini-pro")) == "gemini-3.0-pro-preview"

    def test_tie_prefers_shortest(self):
        ids = ["claude-sonnet-4-5-20250929", "claude-sonnet-4-5", "claude-sonnet-4-20250514"]
        assert find_best_match(ids, get_family("claude-sonnet")) == "claude-sonnet-4-5"

    def test_no_match(self):
        assert find_best_match(["gpt-5-mini"], get_family("claude-opus")) is None

    def test_family_patterns_do_not_overlap(self):
        ids = ["gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-3.0-flash-lite"]
        assert find_best_match(ids, get_family("gemini-flash")) == "gemini-2.5-flash"
        assert find_best_match(ids, get_family("gemini-flash-lite")) == "gemini-3.0-flash-lite"


class TestDiscoveryRun:
    """run_discovery() against scripted providers."""

    @pytest.mark.asyncio
    async def test_publishes_new_snapshot(self, make_adapter, make_registry):
        gemini = make_adapter(Provider.GEMINI, models=["gemini-2.5-pro", "gemini-3.0-pro", "gemini-2.5-flash"])
        holder = CatalogHolder()
        before = holder.current()
        service = ModelDiscoveryService(make_registry(gemini), holder)

        report = await service.run_discovery()

        assert report.has_updates
        assert report.errors == []
        changed = {r.alias: r.new_model_id for r in report.results if r.changed}
        assert changed == {"gemini-pro": "gemini-3.0-pro"}
        after = holder.current()
        assert after is not before
        assert after.version == before.version + 1
        assert after.resolve("gemini-pro").model_id == "gemini-3.0-pro"
        # The old snapshot is untouched
        assert before.resolve("gemini-pro").model_id == "gemini-2.5-pro"
        assert service.last_report is report

    @pytest.mark.asyncio
    async def test_no_changes_keeps_snapshot(self, make_adapter, make_registry):
        openai = make_adapter(Provider.OPENAI, models=["gpt-5", "gpt-5-mini", "gpt-5-nano"])
        holder = CatalogHolder()
        before = holder.current()

        report = await ModelDiscoveryService(make_registry(openai), holder).run_discovery()

        assert not report.has_updates
        assert holder.current() is before

    @pytest.mark.asyncio
    async def test_provider_failure_is_reported(self, make_adapter, make_registry, status_error):
        broken = make_adapter(Provider.ANTHROPIC, models=status_error(503))
        gemini = make_adapter(Provider.GEMINI, models=["gemini-3.0-pro"])
        holder = CatalogHolder()

        report = await ModelDiscoveryService(make_registry(broken, gemini), holder).run_discovery()

        assert len(report.errors) == 1
        assert report.errors[0].startswith("anthropic discovery failed")
        assert holder.current().resolve("gemini-pro").model_id == "gemini-3.0-pro"
        assert holder.current().resolve("claude-sonnet").model_id == "claude-sonnet-4-5"
        assert report.to_dict()["has_updates"] is True

    @pytest.mark.asyncio
    async def test_scheduler_start_stop(self, make_registry):
        service = ModelDiscoveryService(make_registry(), CatalogHolder())
        service.start_scheduler(startup_delay=3600, interval=3600)
        await asyncio.sleep(0)
        await service.stop_scheduler()
        assert service._task is None
