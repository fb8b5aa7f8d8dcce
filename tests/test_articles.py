"""Tests para el upsert de artículos versionados contra una org en memoria."""

from __future__ import annotations

import json

import pytest

from conftest import make_record
from kbsync.models import Operation, Outcome, PublishStatus, SourceRecord
from kbsync.site_config import EffectiveConfig
from kbsync.sync.articles import (
    ArticleState,
    build_lookup_query,
    classify,
    delete_article,
    export_batch,
    find_article_by_external_id,
    upsert_article,
)

CONFIG = EffectiveConfig(field_mapping={"Title": "name", "UrlName": "name"}, transforms={"UrlName": "urlSafe"})
PUBLISHING = EffectiveConfig(
    field_mapping={"Title": "name", "UrlName": "name"},
    transforms={"UrlName": "urlSafe"},
    publish_articles=True,
)


def test_lookup_query_escapes_and_filters():
    soql = build_lookup_query("o'neil", "Knowledge__kav", "Draft")
    assert "SFCC_External_ID__c = 'o\\'neil'" in soql
    assert "AND PublishStatus = 'Draft'" in soql
    assert soql.endswith("ORDER BY VersionNumber DESC LIMIT 1")
    assert "PublishStatus = " not in build_lookup_query("x", "Knowledge__kav", None).split("WHERE")[1]


def test_classify():
    assert classify(None) is ArticleState.NOT_EXISTS


@pytest.mark.asyncio
async def test_lookup_prefers_draft_over_online(org, client):
    online = org.seed_version("faq-001", "Online", number=1)
    draft = org.seed_version("faq-001", "Draft", master_id=online["KnowledgeArticleId"], number=2)

    found = await find_article_by_external_id(client, "faq-001", "Knowledge__kav")

    assert found.version_id == draft["Id"]
    assert classify(found) is ArticleState.DRAFT_EXISTS


@pytest.mark.asyncio
async def test_lookup_falls_back_to_any_status(org, client):
    archived = org.seed_version("faq-001", "Archived")

    found = await find_article_by_external_id(client, "faq-001", "Knowledge__kav")

    assert found.version_id == archived["Id"]
    assert classify(found) is ArticleState.OTHER_EXISTS
    assert len(org.api_calls("GET", "/query")) == 3


@pytest.mark.asyncio
async def test_archived_version_is_patched_in_place(org, client):
    """Una versión archivada se actualiza directo, sin pedir un draft nuevo."""
    archived = org.seed_version("faq-001", "Archived")

    result = await upsert_article(client, make_record("faq-001", name="Reset Password"), CONFIG)

    assert result.success
    assert result.operation is Operation.UPDATE
    assert result.outcome is Outcome.UPDATED_DRAFT
    assert result.publish_status is PublishStatus.DRAFT
    assert result.version_id == archived["Id"]
    assert result.master_id == archived["KnowledgeArticleId"]

    patches = org.api_calls("PATCH", "/sobjects/Knowledge__kav")
    assert [p.url.path.rsplit("/", 1)[1] for p in patches] == [archived["Id"]]
    assert org.api_calls("POST", "masterVersions") == []
    assert archived["fields"]["Title"] == "Reset Password"


@pytest.mark.asyncio
async def test_create_new_article(org, client):
    result = await upsert_article(client, make_record("faq-001", name="Reset Password"), CONFIG)

    assert result.success
    assert result.operation is Operation.CREATE
    assert result.outcome is Outcome.CREATED
    assert result.publish_status is PublishStatus.DRAFT
    version = org.versions_for("faq-001")[0]
    assert result.version_id == version["Id"]
    # El master id sale de una consulta posterior al create
    assert result.master_id == version["KnowledgeArticleId"] != result.version_id

    sent = json.loads(org.api_calls("POST", "/sobjects/Knowledge__kav")[0].content)
    assert sent["UrlName"] == "reset-password"
    assert sent["Language"] == "en_US"
    assert sent["SFCC_External_ID__c"] == "faq-001"


@pytest.mark.asyncio
async def test_draft_update_is_idempotent(org, client):
    """Reexportar sobre un Draft lo actualiza en su lugar: misma versión, sin duplicados."""
    record = make_record("faq-001")
    first = await upsert_article(client, record, CONFIG)
    second = await upsert_article(client, record, CONFIG)

    assert second.success
    assert second.operation is Operation.UPDATE
    assert second.outcome is Outcome.UPDATED_DRAFT
    assert second.version_id == first.version_id
    assert second.master_id == first.master_id
    assert len(org.versions_for("faq-001")) == 1

    patch = json.loads(org.api_calls("PATCH", "/sobjects/Knowledge__kav/")[0].content)
    assert "Language" not in patch


@pytest.mark.asyncio
async def test_online_article_gets_new_draft(org, client):
    """Editar un artículo publicado crea un Draft nuevo del mismo master."""
    record = make_record("faq-001")
    first = await upsert_article(client, record, PUBLISHING)
    assert first.outcome is Outcome.PUBLISHED
    assert first.publish_status is PublishStatus.ONLINE

    second = await upsert_article(client, record, CONFIG)

    assert second.success
    assert second.outcome is Outcome.CREATED
    assert second.operation is Operation.UPDATE
    assert second.master_id == first.master_id
    assert second.version_id != first.version_id
    statuses = sorted(v["PublishStatus"] for v in org.versions_for("faq-001"))
    assert statuses == ["Draft", "Online"]


@pytest.mark.asyncio
async def test_republish_archives_previous_online(org, client):
    record = make_record("faq-001")
    await upsert_article(client, record, PUBLISHING)
    third = await upsert_article(client, record, PUBLISHING)

    assert third.outcome is Outcome.PUBLISHED
    statuses = sorted(v["PublishStatus"] for v in org.versions_for("faq-001"))
    assert statuses == ["Archived", "Online"]


@pytest.mark.asyncio
async def test_publish_failure_keeps_draft_success(org, client):
    org.publish_error = True

    result = await upsert_article(client, make_record("faq-001"), PUBLISHING)

    assert result.success
    assert result.publish_status is PublishStatus.DRAFT
    assert result.outcome is Outcome.CREATED
    assert result.warning.startswith("Publish failed")
    assert "Validation rule" in result.warning


@pytest.mark.asyncio
async def test_draft_from_online_failure(org, client):
    org.seed_version("faq-001", "Online")
    org.draft_error = True

    result = await upsert_article(client, make_record("faq-001"), CONFIG)

    assert not result.success
    assert result.operation is Operation.EDIT_ONLINE
    assert result.error.startswith("Failed to create draft")


@pytest.mark.asyncio
async def test_rejected_create(org, client):
    org.reject_external_ids.add("faq-001")

    result = await upsert_article(client, make_record("faq-001"), CONFIG)

    assert not result.success
    assert result.outcome is Outcome.FAILED
    assert "data value too large" in result.error


@pytest.mark.asyncio
async def test_unmappable_record_fails(org, client):
    """Sobre un Draft existente no va Language, así que un registro vacío no mapea nada."""
    org.seed_version("faq-009", "Draft")
    config = EffectiveConfig(field_mapping={"Summary": "pageDescription"})

    result = await upsert_article(client, SourceRecord(id="faq-009"), config)

    assert not result.success
    assert "Failed to map content" in result.error
    assert org.api_calls("PATCH", "/sobjects/") == []


@pytest.mark.asyncio
async def test_record_type_in_payload(org, client):
    await upsert_article(client, make_record("faq-001"), CONFIG, record_type_id="012000000000FAQ")
    sent = json.loads(org.api_calls("POST", "/sobjects/Knowledge__kav")[0].content)
    assert sent["RecordTypeId"] == "012000000000FAQ"


@pytest.mark.asyncio
async def test_export_batch_isolates_failures(org, client):
    org.reject_external_ids.add("faq-002")
    records = [make_record("faq-001"), make_record("faq-002"), make_record("faq-003")]

    result = await export_batch(client, records, CONFIG)

    assert result.success
    assert result.success_count == 2
    assert result.failure_count == 1
    assert [d.content_id for d in result.details] == ["faq-001", "faq-002", "faq-003"]


@pytest.mark.asyncio
async def test_export_empty_batch(client):
    result = await export_batch(client, [], CONFIG)
    assert not result.success
    assert result.error == "Empty batch"


@pytest.mark.asyncio
async def test_delete_article(org, client):
    await upsert_article(client, make_record("faq-001"), PUBLISHING)
    await upsert_article(client, make_record("faq-001"), CONFIG)

    deleted = await delete_article(client, "faq-001", "Knowledge__kav")

    assert deleted.success
    assert org.versions_for("faq-001") == []


@pytest.mark.asyncio
async def test_delete_missing_article(client):
    deleted = await delete_article(client, "faq-404", "Knowledge__kav")
    assert not deleted.success
    assert deleted.error == "Article not found"
