"""Tests for the finalization snapshot fetch."""
import asyncio

import pytest

from src.exceptions import NetworkError
from src.services.finalizer import fetch_final_snapshots


class TestFetchFinalSnapshots:
    """Tests for fetch_final_snapshots."""

    @pytest.mark.asyncio
    async def test_all_succeed(self, client):
        """Test a complete fetch."""
        client.pages.return_value = [{"url": "https://a"}]

        result = await fetch_final_snapshots(client, "42")

        assert result.complete
        assert result.snapshots == {
            "pages": [{"url": "https://a"}],
            "flows": [],
            "extracted_data": [],
        }
        client.pages.assert_awaited_once_with("42")

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, client):
        """Test that each failed request becomes its own error."""
        client.flows.side_effect = NetworkError("HTTP 500", status_code=500)
        client.extracted_data.side_effect = NetworkError("timed out")

        result = await fetch_final_snapshots(client, "42")

        assert not result.complete
        assert list(result.snapshots) == ["pages"]
        assert [e.collection for e in result.errors] == ["flows", "extracted_data"]
        assert result.errors[0].cause.status_code == 500
        assert "Failed to load final flows for session 42" in str(result.errors[0])

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, client):
        """Test that cancellation is not turned into a partial result."""
        client.pages.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await fetch_final_snapshots(client, "42")
