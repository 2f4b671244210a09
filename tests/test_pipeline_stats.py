from datetime import datetime, timedelta, timezone

import pytest

from hirepipe.core.stage_machine import ALL_STAGES
from hirepipe.schemas.pipeline import PipelineFilter
from hirepipe.services.pipeline_stats import candidates_by_stage, pipeline_stats, stage_distribution


@pytest.mark.asyncio
async def test_empty_pipeline_has_zero_rates(db_session):
    stats = await pipeline_stats(db_session)

    assert stats.total_candidates == 0
    assert stats.conversion_rate == 0
    assert stats.hire_rate == 0
    assert stats.stage_distribution == {stage: 0 for stage in ALL_STAGES}


@pytest.mark.asyncio
async def test_distribution_has_every_stage_in_catalog_order(db_session, make_candidate):
    await make_candidate("interview")

    distribution = await stage_distribution(db_session)

    assert list(distribution) == list(ALL_STAGES)
    assert distribution["interview"] == 1
    assert sum(distribution.values()) == 1


@pytest.mark.asyncio
async def test_conversion_and_hire_rates(db_session, make_candidate):
    layout = {"applied": 40, "screening": 30, "interview": 20, "offer": 5, "hired": 5}
    for stage, count in layout.items():
        for _ in range(count):
            await make_candidate(stage)

    stats = await pipeline_stats(db_session)

    assert stats.total_candidates == 100
    assert stats.conversion_rate == 60
    assert stats.hire_rate == 5
    assert stats.stage_distribution["rejected"] == 0


@pytest.mark.asyncio
async def test_inactive_candidates_are_excluded(db_session, make_candidate):
    await make_candidate("hired")
    await make_candidate("hired", is_active=False)

    stats = await pipeline_stats(db_session)
    assert stats.total_candidates == 1
    assert stats.hire_rate == 100


@pytest.mark.asyncio
async def test_skill_filter_matches_any_case_insensitive(db_session, make_candidate):
    await make_candidate("screening", skills=["Python", "SQL"])
    await make_candidate("applied", skills=["Go"])
    await make_candidate("interview", skills=["python"])

    distribution = await stage_distribution(db_session, PipelineFilter(skills="PYTHON"))
    assert distribution["screening"] == 1
    assert distribution["interview"] == 1
    assert distribution["applied"] == 0

    stats = await pipeline_stats(db_session, PipelineFilter(skills=["go", "sql"]))
    assert stats.total_candidates == 2


@pytest.mark.asyncio
async def test_location_and_source_filters(db_session, make_candidate):
    await make_candidate("applied", location="Bengaluru, IN", source="Referral")
    await make_candidate("screening", location="Delhi", source="referral")
    await make_candidate("offer", location="bengaluru", source="LinkedIn")

    stats = await pipeline_stats(db_session, PipelineFilter(location="BENGALURU"))
    assert stats.total_candidates == 2

    stats = await pipeline_stats(db_session, PipelineFilter(source="REFERRAL"))
    assert stats.total_candidates == 2
    assert stats.conversion_rate == 50


@pytest.mark.asyncio
async def test_location_filter_treats_wildcards_literally(db_session, make_candidate):
    await make_candidate("applied", location="Pune")
    stats = await pipeline_stats(db_session, PipelineFilter(location="%"))
    assert stats.total_candidates == 0


@pytest.mark.asyncio
async def test_applied_date_range_is_inclusive(db_session, make_candidate):
    await make_candidate("applied", applied_at=datetime(2026, 1, 1))
    await make_candidate("screening", applied_at=datetime(2026, 2, 1))
    await make_candidate("hired", applied_at=datetime(2026, 3, 1))

    filters = PipelineFilter(applied_from=datetime(2026, 1, 1), applied_to=datetime(2026, 2, 1))
    stats = await pipeline_stats(db_session, filters)
    assert stats.total_candidates == 2
    assert stats.hire_rate == 0


def test_filter_rejects_inverted_date_range():
    with pytest.raises(ValueError):
        PipelineFilter(applied_from=datetime(2026, 2, 1), applied_to=datetime(2026, 1, 1))


@pytest.mark.asyncio
async def test_legacy_stage_counts_in_total_only(db_session, make_candidate):
    await make_candidate("Applied")
    await make_candidate("hired")

    stats = await pipeline_stats(db_session)
    assert stats.total_candidates == 2
    assert "Applied" not in stats.stage_distribution
    assert stats.hire_rate == 50


@pytest.mark.asyncio
async def test_board_groups_ids_by_stage(db_session, make_candidate):
    first = await make_candidate("screening", applied_at=datetime(2026, 1, 1))
    second = await make_candidate("screening", applied_at=datetime(2026, 1, 2))
    offer = await make_candidate("offer")

    board = await candidates_by_stage(db_session)

    assert [column.stage for column in board] == list(ALL_STAGES)
    columns = {column.stage: column for column in board}
    assert columns["screening"].candidate_ids == [first, second]
    assert columns["screening"].count == 2
    assert columns["offer"].candidate_ids == [offer]
    assert columns["hired"].count == 0


@pytest.mark.asyncio
async def test_timezone_aware_bounds_are_compared_in_utc(db_session, make_candidate):
    ist = timezone(timedelta(hours=5, minutes=30))
    await make_candidate("applied", applied_at=datetime(2026, 1, 1, 3, 0))

    filters = PipelineFilter(applied_from=datetime(2026, 1, 1, 5, 0, tzinfo=timezone(timedelta(hours=5))))
    assert filters.applied_from == datetime(2026, 1, 1, 0, 0)
    assert (await pipeline_stats(db_session, filters)).total_candidates == 1

    filters = PipelineFilter(applied_to=datetime(2026, 1, 1, 8, 0, tzinfo=ist))
    assert (await pipeline_stats(db_session, filters)).total_candidates == 0
