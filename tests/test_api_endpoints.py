import sys
import os
import pytest
import httpx

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import api.risk_api as app_module
from backend.favorites import FavoritesStore
from backend.narrative import QuotaExceeded


class StaticGenerator:
    available = True

    def __init__(self, reply="Generated explanation.", error=None):
        self.reply = reply
        self.error = error

    def generate(self, prompt, context=None):
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client(tmp_path):
    app_module.set_favorites_store(
        FavoritesStore(tmp_path, key="entheogen_favorites", legacy_keys=("seshguard_favorites",))
    )
    app_module.set_narrative_generator(StaticGenerator())
    transport = httpx.ASGITransport(app=app_module.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client


pytestmark = pytest.mark.anyio("asyncio")


async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["brand"] == "entheogen"
    assert data["substances_loaded"] == 28
    assert data["interactions_loaded"] == 28
    assert data["narrative_enabled"] is True


async def test_list_substances(client):
    resp = await client.get("/api/substances")
    assert resp.status_code == 200
    ids = [item["id"] for item in resp.json()["substances"]]
    assert ids[0] == "ayahuasca"
    assert len(ids) == 28


async def test_search_substances_by_class(client):
    resp = await client.get("/api/substances", params={"q": "deliriant"})
    assert resp.status_code == 200
    ids = {item["id"] for item in resp.json()["substances"]}
    assert ids == {"belladonna", "brugmansia"}


async def test_get_substance(client):
    resp = await client.get("/api/substances/five_meo_dmt")
    assert resp.status_code == 200
    assert resp.json()["name"] == "5-MeO-DMT"
    missing = await client.get("/api/substances/unknown")
    assert missing.status_code == 404


async def test_legend_includes_actions(client):
    resp = await client.get("/api/legend")
    assert resp.status_code == 200
    legend = resp.json()["legend"]
    assert [entry["code"] for entry in legend][:2] == ["SELF", "UNKNOWN"]
    assert legend[-1]["code"] == "DAN"
    assert all(entry["action"] for entry in legend)


async def test_interaction_is_symmetric(client):
    first = await client.get("/api/interaction", params={"a": "ayahuasca", "b": "alcohol"})
    second = await client.get("/api/interaction", params={"a": "alcohol", "b": "ayahuasca"})
    assert first.status_code == 200
    assert second.status_code == 200
    one = first.json()["interaction"]
    two = second.json()["interaction"]
    assert one["evidence"] == two["evidence"]
    assert one["evidence"]["code"] == "DAN"
    assert one["key"] == "alcohol|ayahuasca"


async def test_interaction_unknown_pair_is_not_an_error(client):
    resp = await client.get("/api/interaction", params={"a": "salvia", "b": "belladonna"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["interaction"]["evidence"]["code"] == "UNKNOWN"
    assert data["interaction"]["evidence"]["sources"] == "source-gap"


async def test_interaction_readout_has_consensus_note(client):
    resp = await client.get("/api/interaction", params={"a": "ssri", "b": "ayahuasca"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["interaction"]["specialNote"]
    assert "### Consensus note" in data["readout"]


async def test_interaction_unknown_substance(client):
    resp = await client.get("/api/interaction", params={"a": "ayahuasca", "b": "unknown"})
    assert resp.status_code == 404


async def test_interaction_missing_parameter(client):
    resp = await client.get("/api/interaction", params={"a": "ayahuasca"})
    assert resp.status_code == 422


async def test_explain_generated(client):
    resp = await client.get("/api/interaction/explain", params={"a": "ayahuasca", "b": "ssri"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["source"] == "generated"
    assert data["text"] == "Generated explanation."
    assert data["error"] is None


async def test_explain_falls_back_on_quota(client):
    app_module.set_narrative_generator(StaticGenerator(error=QuotaExceeded("429")))
    resp = await client.get("/api/interaction/explain", params={"a": "ayahuasca", "b": "ssri"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["source"] == "rule-based"
    assert data["error"] == "QUOTA_EXCEEDED"
    assert data["retryable"] is True
    assert data["text"] == data["readout"]


async def test_explain_without_generator(client):
    app_module.set_narrative_generator(None)
    resp = await client.get("/api/interaction/explain", params={"a": "psilocybin", "b": "ssri"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["error"] == "API_KEY_MISSING"
    assert data["retryable"] is False


async def test_summary_single_and_pair(client):
    single = await client.get("/api/summary", params={"a": "kambo"})
    assert single.status_code == 200
    assert single.json()["source"] == "generated"
    pair = await client.get("/api/summary", params={"a": "kambo", "b": "ayahuasca"})
    assert pair.status_code == 200
    assert "(`CAU`)" in pair.json()["readout"]


async def test_favorites_toggle_roundtrip(client):
    empty = await client.get("/api/favorites")
    assert empty.json() == {"favorites": []}

    added = await client.post("/api/favorites/toggle", json={"drug1": "ssri", "drug2": "ayahuasca"})
    assert added.status_code == 200
    assert added.json()["favorited"] is True
    assert added.json()["favorites"][0]["id"] == "ayahuasca|ssri"
    assert added.json()["favorites"][0]["code"] == "DAN"

    listed = await client.get("/api/favorites")
    assert [fav["id"] for fav in listed.json()["favorites"]] == ["ayahuasca|ssri"]

    removed = await client.post("/api/favorites/toggle", json={"drug1": "ayahuasca", "drug2": "ssri"})
    assert removed.json()["favorited"] is False
    assert removed.json()["favorites"] == []


async def test_favorites_reject_self_pair(client):
    resp = await client.post("/api/favorites/toggle", json={"drug1": "lsd", "drug2": "lsd"})
    assert resp.status_code == 400


async def test_favorites_toggle_validation(client):
    resp = await client.post("/api/favorites/toggle", json={"drug1": "lsd"})
    assert resp.status_code == 422
    blank = await client.post("/api/favorites/toggle", json={"drug1": " ", "drug2": "lsd"})
    assert blank.status_code == 422


async def test_delete_favorite(client):
    await client.post("/api/favorites/toggle", json={"a": "kambo", "b": "ayahuasca"})
    resp = await client.delete("/api/favorites/ayahuasca|kambo")
    assert resp.status_code == 200
    assert resp.json()["favorites"] == []
    missing = await client.delete("/api/favorites/ayahuasca|kambo")
    assert missing.status_code == 404
