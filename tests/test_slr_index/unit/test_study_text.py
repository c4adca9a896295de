"""Unit tests for study text composition and study service validation."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from slr_index.studies import QA_FIELDS, StudyService, next_paper_key
from slr_index.study_indexer import STUDY_TEXT_FIELDS, build_study_record, compose_study_text


def make_study(**fields) -> SimpleNamespace:
    base = {attr: None for attr, _ in STUDY_TEXT_FIELDS}
    base.update({field: None for field in QA_FIELDS})
    base.update(
        id="study-1",
        project_id="project-1",
        paper_key="P001",
        status="INCLUDED",
        year=2023,
        embedding_id=None,
    )
    base.update(fields)
    return SimpleNamespace(**base)


class TestComposeStudyText:
    def test_label_order_and_separator(self) -> None:
        study = make_study(
            title="Graph RAG",
            abstract="We study retrieval.",
            authors="Lee, K.",
            metrics_results="F1 0.82",
            gap_notes="No user study",
        )

        assert compose_study_text(study) == (
            "Title: Graph RAG\n\n"
            "Abstract: We study retrieval.\n\n"
            "Authors: Lee, K.\n\n"
            "Metrics & Results: F1 0.82\n\n"
            "Research Gaps: No user study"
        )

    def test_blank_fields_skipped(self) -> None:
        study = make_study(title="Only title", abstract="   ", keywords="")
        assert compose_study_text(study) == "Title: Only title"

    def test_all_empty(self) -> None:
        assert compose_study_text(make_study(title="")) == ""

    def test_renamed_labels(self) -> None:
        labels = dict(STUDY_TEXT_FIELDS)
        assert labels["data_input_used"] == "Data Input"
        assert labels["qa_notes"] == "Quality Notes"
        assert labels["comparison_baseline"] == "Baseline Comparison"
        assert len(STUDY_TEXT_FIELDS) == 23

    def test_build_record(self) -> None:
        study = make_study(title="Graph RAG", authors="Lee")
        record = build_study_record(study, [0.5] * 1024, "Title: Graph RAG")

        assert record.id == "study-1"
        assert record.paper_key == "P001"
        assert record.embedded_text == "Title: Graph RAG"


class TestPaperKey:
    def test_zero_padded(self) -> None:
        assert next_paper_key(0) == "P001"
        assert next_paper_key(41) == "P042"
        assert next_paper_key(999) == "P1000"


@pytest.fixture
def service() -> StudyService:
    catalog = MagicMock()
    catalog.get_study.return_value = make_study(qa_q1=2, qa_q2=1)
    catalog.update_study.side_effect = lambda study_id, **fields: make_study(
        status=fields.get("status", "READING")
    )
    indexer = MagicMock()
    indexer.index_study = AsyncMock(return_value=True)
    indexer.remove_from_index = AsyncMock()
    return StudyService(catalog, indexer, MagicMock())


class TestStudyServiceValidation:
    @pytest.mark.asyncio
    async def test_exclusion_requires_reason(self, service) -> None:
        with pytest.raises(ValueError, match="Exclusion reason is required"):
            await service.update_status("study-1", "EXCLUDED")
        service.catalog.update_study.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_status_rejected(self, service) -> None:
        with pytest.raises(ValueError):
            await service.update_status("study-1", "MAYBE")

    @pytest.mark.asyncio
    async def test_qa_score_range(self, service) -> None:
        with pytest.raises(ValueError, match="qa_q3 must be between 0 and 2"):
            await service.update_study("study-1", qa_q3=3)

    @pytest.mark.asyncio
    async def test_qa_total_merges_stored_scores(self, service) -> None:
        await service.update_study("study-1", qa_q3=2)

        fields = service.catalog.update_study.call_args.kwargs
        assert fields["qa_q3"] == 2
        assert fields["qa_total"] == 5

    @pytest.mark.asyncio
    async def test_indexing_failure_does_not_fail_update(self, service) -> None:
        service.indexer.index_study.side_effect = RuntimeError("provider down")

        study, outcome = await service.update_status("study-1", "INCLUDED")

        assert study.status == "INCLUDED"
        assert outcome.action == "none"
        assert outcome.error == "provider down"

    def test_create_requires_title_and_year(self, service) -> None:
        with pytest.raises(ValueError, match="Title and Year are required"):
            service.create_study("project-1", "  ", 2024)
        with pytest.raises(ValueError, match="Title and Year are required"):
            service.create_study("project-1", "Title", None)  # type: ignore[arg-type]
