"""
Quota-checked script generation tests
"""
import asyncio
import pytest
from scriptgenius.ai.script_chain import script_chain
from scriptgenius.core.exceptions import (
    ScriptGenerationError,
    ScriptLimitReachedError,
    ScriptNotFoundError,
    UpstreamRateLimitError,
)
from scriptgenius.core.plans import LimitType, PlanName
from scriptgenius.schemas.subscription import QuotaStatus
from scriptgenius.services.entitlements import entitlement_engine
from scriptgenius.services.script_generation import limit_reached_message, script_generation_service
from scriptgenius.services.subscription_store import subscription_store
from conftest import add_scripts


@pytest.mark.asyncio
async def test_generate_stores_script_and_reports_quota(db, fake_chain):
    record, status = await script_generation_service.generate(
        "writer", "coffee", category="food", tags=["morning"]
    )

    assert record.user_id == "writer"
    assert record.prompt_text == "coffee"
    assert "coffee" in record.generated_text
    assert record.category == "food"
    assert record.tags == ["morning"]
    assert (status.remaining, status.total) == (4, 5)
    assert fake_chain == ["coffee"]
    assert await db.scripts.count_documents({"user_id": "writer"}) == 1


@pytest.mark.asyncio
async def test_limit_reached_raises_and_skips_model(db, fake_chain):
    await add_scripts(db, "capped", 5)

    with pytest.raises(ScriptLimitReachedError) as exc:
        await script_generation_service.generate("capped", "anything")

    assert exc.value.status_code == 403
    assert exc.value.detail["limitType"] == "total"
    assert exc.value.detail["total"] == 5
    assert exc.value.detail["remaining"] == 0
    assert fake_chain == []
    assert await db.scripts.count_documents({"user_id": "capped"}) == 5


@pytest.mark.asyncio
async def test_failed_generation_does_not_consume_quota(db, monkeypatch):
    async def failing(topic, category=None, tags=None):
        raise UpstreamRateLimitError()

    monkeypatch.setattr(script_chain, "generate", failing)
    await add_scripts(db, "unlucky", 4)

    with pytest.raises(UpstreamRateLimitError):
        await script_generation_service.generate("unlucky", "topic")

    status = await entitlement_engine.check_limit("unlucky")
    assert status.can_generate is True
    assert status.remaining == 1
    assert await db.scripts.count_documents({"user_id": "unlucky"}) == 4


@pytest.mark.asyncio
async def test_concurrent_generations_with_one_unit_left(db, monkeypatch):
    async def slow(topic, category=None, tags=None):
        await asyncio.sleep(0)
        return f"script about {topic}"

    monkeypatch.setattr(script_chain, "generate", slow)
    await add_scripts(db, "racer", 4)

    results = await asyncio.gather(
        script_generation_service.generate("racer", "first"),
        script_generation_service.generate("racer", "second"),
        return_exceptions=True
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    refused = [r for r in results if isinstance(r, ScriptLimitReachedError)]
    assert len(succeeded) == 1
    assert len(refused) == 1
    assert await db.scripts.count_documents({"user_id": "racer"}) == 5


@pytest.mark.asyncio
async def test_regenerate_rewrites_without_consuming_quota(db, monkeypatch):
    await add_scripts(db, "editor", 5)
    doc = await db.scripts.find_one({"user_id": "editor", "prompt_text": "topic 0"})

    async def rewrite(topic, category=None, tags=None):
        return f"fresh take on {topic}"

    monkeypatch.setattr(script_chain, "generate", rewrite)

    updated = await script_generation_service.regenerate("editor", str(doc["_id"]))
    assert updated.generated_text == "fresh take on topic 0"
    assert updated.updated_at is not None

    status = await entitlement_engine.check_limit("editor")
    assert status.remaining == 0


@pytest.mark.asyncio
async def test_regenerate_unknown_script(db, fake_chain):
    with pytest.raises(ScriptNotFoundError):
        await script_generation_service.regenerate("editor", "000000000000000000000000")
    with pytest.raises(ScriptNotFoundError):
        await script_generation_service.regenerate("editor", "not-an-id")
    assert fake_chain == []


@pytest.mark.asyncio
async def test_other_users_scripts_are_not_regenerated(db, fake_chain):
    await add_scripts(db, "owner", 1)
    doc = await db.scripts.find_one({"user_id": "owner"})

    with pytest.raises(ScriptNotFoundError):
        await script_generation_service.regenerate("intruder", str(doc["_id"]))


@pytest.mark.asyncio
async def test_empty_model_output_is_refunded(db, monkeypatch):
    async def empty(topic, category=None, tags=None):
        raise ScriptGenerationError("No script was generated. Please try again.")

    monkeypatch.setattr(script_chain, "generate", empty)
    await subscription_store.activate_subscription("paid", "sub_paid", PlanName.STARTER)

    with pytest.raises(ScriptGenerationError):
        await script_generation_service.generate("paid", "topic")

    status = await entitlement_engine.check_limit("paid")
    assert (status.remaining, status.total) == (10, 10)


def test_limit_messages():
    daily = QuotaStatus(
        can_generate=False, remaining=0, total=50,
        limit_type=LimitType.DAILY, plan_name=PlanName.PRO
    )
    total = QuotaStatus(
        can_generate=False, remaining=0, total=5,
        limit_type=LimitType.TOTAL, plan_name=PlanName.FREE
    )
    assert "daily limit of 50" in limit_reached_message(daily)
    assert "all 5 scripts" in limit_reached_message(total)
    assert "Free plan" in limit_reached_message(total)


@pytest.mark.asyncio
async def test_paid_scripts_count_against_free_after_downgrade(db, fake_chain):
    for i in range(2):
        await script_generation_service.generate("downgrader", f"free {i}")

    await subscription_store.activate_subscription("downgrader", "sub_down", PlanName.PRO)
    for i in range(20):
        await script_generation_service.generate("downgrader", f"pro {i}")

    await subscription_store.cancel("sub_down")

    status = await entitlement_engine.check_limit("downgrader")
    assert status.plan_name == PlanName.FREE
    assert (status.can_generate, status.remaining, status.total) == (False, 0, 5)

    with pytest.raises(ScriptLimitReachedError):
        await script_generation_service.generate("downgrader", "one more")
    assert await db.scripts.count_documents({"user_id": "downgrader"}) == 22

    usage = await db.script_usage.find_one({"user_id": "downgrader", "window": "total"})
    assert usage["used"] == 22
