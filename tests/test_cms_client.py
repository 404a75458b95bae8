"""Tests for the CMS client against a mock transport."""

import httpx
import pytest

from cmsprobe.backends import CMSClient
from cmsprobe.errors import BackendUnreachable


def _client(handler):
    return CMSClient(
        "http://cms.local",
        "http://cms.local/api/tina/gql",
        transport=httpx.MockTransport(handler),
    )


class TestCMSClient:
    async def test_fetch_page(self):
        def handler(request):
            return httpx.Response(200, text="<html>home</html>")

        async with _client(handler) as client:
            assert await client.fetch_page() == "<html>home</html>"

    async def test_fetch_page_error_status(self):
        def handler(request):
            return httpx.Response(500, text="oops")

        async with _client(handler) as client:
            with pytest.raises(BackendUnreachable) as excinfo:
                await client.fetch_page()
        assert excinfo.value.status_code == 500

    async def test_graphql_errors_are_returned(self):
        def handler(request):
            return httpx.Response(200, json={"data": None, "errors": [{"message": "Unable to find record"}]})

        async with _client(handler) as client:
            result = await client.page_on_branch("branch-1.md", "test-switch-1")

        assert result.ok is False
        assert result.errors[0]["message"] == "Unable to find record"

    async def test_graphql_data(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"page": {"title": "Branch 1 Content"}}})

        async with _client(handler) as client:
            result = await client.page_on_branch("branch-1.md", "test-switch-1")

        assert result.ok is True
        assert result.data["page"]["title"] == "Branch 1 Content"

    async def test_non_json_response_raises(self):
        def handler(request):
            return httpx.Response(502, text="<html>bad gateway</html>")

        async with _client(handler) as client:
            with pytest.raises(BackendUnreachable):
                await client.execute_query("{ __typename }")

    async def test_reachability_checks(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(404)
            return httpx.Response(200, text="ok")

        async with _client(handler) as client:
            assert await client.check_site() is True
            assert await client.check_api() is False
