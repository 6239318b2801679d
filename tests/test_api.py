"""Tests for the HTTP surface."""

import pytest
from conftest import FakeLLM, FakeStore, author
from fastapi.testclient import TestClient

from reconciler.agents.verification_agents import VerificationOrchestrator
from reconciler.api import main
from reconciler.models.schemas import EnrichmentPatch, Record, SourceName
from reconciler.utils.llm_client import LLMClient

DOI = "10.1109/SP.2017.41"


class StubCascade:
    def __init__(self, patch=None):
        self.patch = patch

    async def enrich(self, record):
        return self.patch

    def source_status(self):
        return {"crossref": {"failures": {}, "disabled_apis": {}}}


def _record_json(key: str, **fields) -> dict:
    return {"key": key, "version": 1, "fields": {"itemType": "journalArticle", **fields}}


@pytest.fixture
def client(monkeypatch):
    with TestClient(main.app) as test_client:
        cascade = StubCascade(EnrichmentPatch(source=SourceName.CROSSREF, strategy="crossref_doi",
                                              fields={"volume": "12"}, field_sources={"volume": "crossref"}))
        monkeypatch.setattr(main, "cascade", cascade)
        monkeypatch.setattr(main, "orchestrator", VerificationOrchestrator(LLMClient(llm=FakeLLM()), cascade))
        monkeypatch.setattr(main, "record_store", None)
        yield test_client


def test_root_and_health(client) -> None:
    assert client.get("/").json()["success"] is True
    health = client.get("/health").json()
    assert health["data"]["services_initialized"] is True
    assert health["data"]["record_store_configured"] is False
    assert health["data"]["sources"]["crossref"]["disabled_apis"] == {}


def test_detect_duplicates(client) -> None:
    response = client.post("/duplicates/detect", json={"records": [
        _record_json("A", DOI=DOI),
        _record_json("B", DOI=f"https://doi.org/{DOI}"),
        _record_json("C", title="A note without keys", itemType="note"),
    ]})

    assert response.status_code == 200
    groups = response.json()["data"]
    assert [(g["id"], g["match_reason"]) for g in groups] == [("A,B", "DOI")]


def test_enrich_returns_patch(client) -> None:
    response = client.post("/enrich", json={"record": _record_json("A", DOI=DOI)})
    data = response.json()["data"]
    assert data["source"] == "crossref"
    assert data["fields"] == {"volume": "12"}


def test_manual_merge_rejects_bad_selection(client) -> None:
    group = {"id": "A,B", "match_reason": "DOI", "members": [_record_json("A", DOI=DOI), _record_json("B", DOI=DOI)]}
    response = client.post("/merge/manual", json={"group": group, "selections": {"title": 5}})
    assert response.status_code == 400


def test_auto_merge_fills_from_cascade(client) -> None:
    group = {"id": "A,B", "match_reason": "DOI", "members": [
        _record_json("A", DOI=DOI, title="Short one here"),
        _record_json("B", DOI=DOI, title="The longer title wins the merge"),
    ]}
    data = client.post("/merge/auto", json={"group": group}).json()["data"]

    assert data["source"] == "merge"
    assert data["fields"]["title"] == "The longer title wins the merge"
    assert data["field_sources"]["volume"] == "crossref"


def test_finalize_requires_record_store(client) -> None:
    group = {"id": "A,B", "match_reason": "DOI", "members": [_record_json("A", DOI=DOI), _record_json("B", DOI=DOI)]}
    patch = {"source": "merge", "fields": {"DOI": DOI}}
    assert client.post("/merge/finalize", json={"group": group, "patch": patch}).status_code == 503


def test_finalize_merges_into_master(client, monkeypatch) -> None:
    members = [Record.model_validate(_record_json("A", DOI=DOI)), Record.model_validate(_record_json("B", DOI=DOI))]
    monkeypatch.setattr(main, "record_store", FakeStore(members))
    group = {"id": "A,B", "match_reason": "DOI", "members": [m.model_dump() for m in members]}

    response = client.post("/merge/finalize", json={"group": group, "patch": {"source": "merge", "fields": {"pages": "1-9"}}})

    data = response.json()["data"]
    assert data["deleted"] == ["B"]
    assert data["master"]["fields"]["pages"] == "1-9"


def test_verify_reports_placeholder_author(client) -> None:
    record = _record_json("A", title="Some title long enough", creators=[author("Last1", "F")])
    data = client.post("/verify", json={"record": record}).json()["data"]

    assert data["overall_status"] == "failed"
    assert "Placeholder author names detected" in data["findings"]["errors"]


def test_unknown_job_is_404(client) -> None:
    assert client.get("/job-status/does-not-exist").status_code == 404
    assert client.post("/jobs/does-not-exist/cancel").status_code == 404


def test_batch_rejects_unknown_operation(client) -> None:
    response = client.post("/verify-batch-async", json={"records": [], "operation": "delete"})
    assert response.status_code == 400


def test_issue_scan(client) -> None:
    response = client.post("/issues/scan", json={"records": [
        _record_json("A", title="Only a title here"),
        _record_json("N", itemType="note"),
    ]})

    flagged = response.json()["data"]
    assert [entry["record"]["key"] for entry in flagged] == ["A"]
    assert {"field": "Authors", "severity": "high", "message": "Missing authors"} in flagged[0]["issues"]
