"""
Request router classification and dispatch.
"""

import pytest

from guardsync.cache.types import Request, Response, ResourceClass
from guardsync.worker.router import RequestRouter


@pytest.fixture
def router():
    return RequestRouter(api_prefixes=["/api/"])


class TestClassify:
    """Test first-match-wins classification."""

    @pytest.mark.parametrize("request_,expected", [
        (Request(method="GET", url="/api/traffic-violations"), ResourceClass.API),
        (Request(method="GET", url="/api"), ResourceClass.API),
        (Request(method="GET", url="https://trafficguard.test/api/sos?x=1"), ResourceClass.API),
        (Request(method="GET", url="/api/sos", mode="navigate"), ResourceClass.API),
        (Request(method="GET", url="/emergency", mode="navigate"), ResourceClass.NAVIGATION),
        (Request(method="GET", url="/icons/icon-72x72.png", destination="image"), ResourceClass.RESOURCE),
        (Request(method="GET", url="/apiary.js"), ResourceClass.RESOURCE),
        (Request(method="GET", url=""), ResourceClass.UNKNOWN),
    ])
    def test_classification(self, router, request_, expected):
        assert router.classify(request_) is expected

    def test_is_api_path(self, router):
        assert router.is_api_path("/api/sos")
        assert not router.is_api_path("/apis")


class TestDispatch:
    """Test each request reaches exactly one handler."""

    @pytest.fixture
    def calls(self, router):
        calls = []

        def make(name):
            async def handler(request):
                calls.append(name)
                return Response(status=200, body=name.encode())
            return handler

        for resource_class in ResourceClass:
            router.register(resource_class, make(resource_class.value))
        router.register_mutation_handler(make("mutation"))
        return calls

    async def test_get_routes_by_class(self, router, calls):
        await router.dispatch(Request(method="GET", url="/api/stats"))
        await router.dispatch(Request(method="GET", url="/report", mode="navigate"))
        await router.dispatch(Request(method="GET", url="/logo.svg"))

        assert calls == ["api", "navigation", "resource"]

    async def test_non_get_never_cache_intercepted(self, router, calls):
        await router.dispatch(Request(method="POST", url="/api/sos", body=b"{}"))
        await router.dispatch(Request(method="DELETE", url="/profile"))

        assert calls == ["mutation", "mutation"]

    async def test_unclassifiable_goes_to_pass_through(self, router, calls):
        response = await router.dispatch(Request(method="POST", url=""))

        assert calls == ["unknown"]
        assert response.body == b"unknown"

    async def test_missing_handler_raises(self, router):
        with pytest.raises(LookupError):
            await router.dispatch(Request(method="GET", url="/api/stats"))
