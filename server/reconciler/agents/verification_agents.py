"""
Parallel verification of one record by four independent agents
"""
import asyncio
from typing import List, Dict, Any, Optional, Tuple
from loguru import logger

from ..models.schemas import (
    Record, Creator, VerificationTask, VerificationFindings, VerificationReport, TaskStatus,
    EnrichmentPatch, parse_creators
)
from ..utils.creator_checks import creator_text, find_placeholder_creators, is_malformed_creator, is_placeholder_name
from ..utils.errors import ParseError
from ..utils.field_schema import missing_citation_fields
from ..utils.text_normalizer import text_normalizer
from .recovery_agent import recover, ExpectedShape

AGENT_TASKS = {
    "publication-existence": ("Publication Existence Check", "Verifying if this publication exists in academic databases"),
    "author-validation": ("Author Validation", "Validating author names and checking for placeholders"),
    "data-quality": ("Data Quality Check", "Checking for malformed data and inconsistencies"),
    "metadata-enrichment": ("Metadata Enrichment", "Searching authoritative sources for missing metadata"),
}


def _new_task(task_id: str) -> VerificationTask:
    name, description = AGENT_TASKS[task_id]
    return VerificationTask(id=task_id, name=name, description=description, status=TaskStatus.RUNNING)


def creator_summary(record: Record) -> str:
    names = [c.display_name for c in record.creators if c.has_name]
    return "; ".join(names)


def _record_context(record: Record) -> str:
    return f"""Title: {record.title}
Authors: {creator_summary(record) or 'None listed'}
Year: {record.get('date') or 'Unknown'}
DOI: {record.get('DOI') or 'Missing'}
ISBN: {record.get('ISBN') or 'Missing'}
Publication: {record.get('publicationTitle') or record.get('bookTitle') or 'Missing'}"""


async def _run_ai_check(task: VerificationTask, prompt: str, llm_client, shape: ExpectedShape) -> VerificationTask:
    try:
        task.result = await llm_client.complete_json(prompt)
        task.status = TaskStatus.COMPLETED
        return task
    except ParseError as e:
        recovery = recover(e.raw_text, shape)
        if recovery.success:
            task.status = TaskStatus.COMPLETED
            task.result = {**recovery.fields, "recoveryWarning": "Partial data recovered from truncated JSON"}
            return task
        task.status = TaskStatus.FAILED
        task.error = f"{str(e)}; {recovery.error}"
    except Exception as e:
        task.status = TaskStatus.FAILED
        task.error = str(e) or e.__class__.__name__
    logger.warning(f"❌ {task.name} failed: {task.error}")
    return task


async def check_publication_existence(record: Record, llm_client) -> VerificationTask:
    task = _new_task("publication-existence")
    prompt = f"""You are a scholarly database verification specialist. Check if this publication actually exists.

{_record_context(record)}

Respond with ONLY a JSON object:
{{
  "exists": true/false,
  "confidence": "high"/"medium"/"low",
  "foundVia": "DOI"/"title_author"/"ISBN"/"not_found",
  "matchedTitle": "exact title if found",
  "matchedDOI": "DOI if found",
  "warnings": ["any warnings about the publication"],
  "reason": "brief explanation"
}}

If the publication does NOT exist or cannot be verified, set exists to false and explain why."""
    return await _run_ai_check(task, prompt, llm_client, ExpectedShape.PUBLICATION_EXISTENCE)


async def validate_authors(record: Record, llm_client) -> VerificationTask:
    task = _new_task("author-validation")

    placeholders = find_placeholder_creators(record.creators)
    if placeholders:
        logger.info(f"👤 Placeholder authors on {record.key}: {placeholders}")
        task.status = TaskStatus.COMPLETED
        task.result = {
            "valid": False,
            "hasPlaceholders": True,
            "needsCorrection": True,
            "message": "Placeholder author names detected",
        }
        return task

    prompt = f"""You are an author verification specialist. Validate the authors listed for this publication.

{_record_context(record)}

Tasks:
1. Verify if the listed authors match the actual publication authors
2. Check if author names are properly formatted (not placeholders like "Last1, F.; Last2")
3. If authors don't match or are missing, provide the correct authors

Respond with ONLY a JSON object:
{{
  "valid": true/false,
  "authorsMatch": true/false,
  "hasPlaceholders": true/false,
  "correctAuthors": [{{"creatorType": "author", "firstName": "...", "lastName": "..."}}],
  "confidence": "high"/"medium"/"low",
  "warnings": ["any warnings"],
  "recommendations": ["what should be done"]
}}"""
    return await _run_ai_check(task, prompt, llm_client, ExpectedShape.AUTHOR_VALIDATION)


async def check_data_quality(record: Record) -> VerificationTask:
    """Local rules only, no remote calls"""
    task = _new_task("data-quality")
    issues: List[str] = []
    warnings: List[str] = []

    for creator in record.creators:
        if not creator.has_name:
            issues.append("Creator missing name")
            continue
        name = creator_text(creator)
        if is_placeholder_name(name):
            issues.append(f"Placeholder author detected: {name}")
            continue
        if is_malformed_creator(creator):
            issues.append(f"Malformed creator name: {name}")

    date = record.get("date")
    if date and not text_normalizer.extract_year(date):
        warnings.append("Date format may be inconsistent")

    doi = record.get("DOI")
    if doi and not text_normalizer.normalize_doi(doi).startswith("10."):
        warnings.append("DOI format may be incorrect")

    task.status = TaskStatus.COMPLETED
    task.result = {
        "quality": "poor" if issues else ("needs_review" if warnings else "good"),
        "issues": issues,
        "warnings": warnings,
    }
    return task


async def enrich_metadata(record: Record, cascade) -> VerificationTask:
    task = _new_task("metadata-enrichment")
    try:
        patch = await cascade.enrich(record)
    except Exception as e:
        task.status = TaskStatus.FAILED
        task.error = str(e)
        logger.warning(f"❌ Enrichment failed for {record.key}: {str(e)}")
        return task

    task.status = TaskStatus.COMPLETED
    if patch:
        task.result = patch.model_dump(mode="json")
        task.source = patch.source.value
    else:
        task.result = {}
    return task


class VerificationOrchestrator:
    """Runs the four agents concurrently and compiles one report"""

    def __init__(self, llm_client, cascade):
        self.llm_client = llm_client
        self.cascade = cascade

    async def run_verification(self, record: Record) -> VerificationReport:
        logger.info(f"🧪 Verifying {record.key}: '{record.title[:80]}'")

        agents = [
            ("publication-existence", check_publication_existence(record, self.llm_client)),
            ("author-validation", validate_authors(record, self.llm_client)),
            ("data-quality", check_data_quality(record)),
            ("metadata-enrichment", enrich_metadata(record, self.cascade)),
        ]
        results = await asyncio.gather(*[coro for _, coro in agents], return_exceptions=True)

        tasks = []
        for (task_id, _), result in zip(agents, results):
            if isinstance(result, BaseException):
                task = _new_task(task_id)
                task.status = TaskStatus.FAILED
                task.error = str(result) or result.__class__.__name__
                logger.error(f"❌ Agent {task_id} raised for {record.key}: {task.error}")
                result = task
            tasks.append(result)

        report = self._compile_report(record, tasks)
        logger.info(f"🧪 {record.key}: {report.overall_status}")
        return report

    def _compile_report(self, record: Record, tasks: List[VerificationTask]) -> VerificationReport:
        by_id = {task.id: task for task in tasks}
        findings = VerificationFindings()
        recommendations: List[str] = []

        existence = by_id["publication-existence"]
        if existence.status == TaskStatus.COMPLETED and existence.result:
            findings.publication_exists = existence.result.get("exists") is True
            if not findings.publication_exists:
                findings.errors.append(f"Publication not found: {existence.result.get('reason') or 'Could not verify existence'}")
                recommendations.append("Verify the title and authors are correct. This publication may not exist in academic databases.")
            elif isinstance(existence.result.get("warnings"), list):
                findings.warnings.extend(str(w) for w in existence.result["warnings"])
        elif existence.status == TaskStatus.FAILED:
            findings.warnings.append(f"Existence check unavailable: {existence.error}")

        author_corrections, author_recommendations = self._author_findings(by_id["author-validation"], findings)
        recommendations.extend(author_recommendations)

        quality = by_id["data-quality"]
        if quality.status == TaskStatus.COMPLETED and quality.result:
            findings.data_quality = quality.result.get("quality", "good")
            findings.errors.extend(quality.result.get("issues") or [])
            findings.warnings.extend(quality.result.get("warnings") or [])

        enrichment = self._enrichment_patch(by_id["metadata-enrichment"])
        if author_corrections and enrichment and enrichment.source.is_authoritative and enrichment.fields.get("creators"):
            logger.info(f"👤 Dropping AI author corrections for {record.key}, {enrichment.source.value} supplied creators")
            author_corrections = None

        enriched_fields = dict(record.fields)
        if enrichment:
            enriched_fields.update(enrichment.fields)
        findings.missing_fields = missing_citation_fields(enriched_fields, record.item_type).all
        if findings.missing_fields:
            recommendations.append(f"Fill missing citation fields: {', '.join(findings.missing_fields)}")

        return VerificationReport(
            record_key=record.key,
            tasks=tasks,
            findings=findings,
            recommendations=recommendations,
            author_corrections=author_corrections,
            enrichment=enrichment,
        )

    def _author_findings(self, task: VerificationTask,
                         findings: VerificationFindings) -> Tuple[Optional[List[Creator]], List[str]]:
        recommendations: List[str] = []
        if task.status != TaskStatus.COMPLETED or not task.result:
            return None, recommendations

        result: Dict[str, Any] = task.result
        findings.authors_valid = result.get("valid") is True and result.get("authorsMatch") is True
        corrections = None
        if not findings.authors_valid:
            if result.get("hasPlaceholders"):
                findings.errors.append("Placeholder author names detected")
                recommendations.append("Replace placeholder authors with actual author names.")
            elif not result.get("authorsMatch"):
                findings.warnings.append("Authors may not match the publication")
                recommendations.append("Verify authors match the actual publication.")

            proposed = parse_creators(result.get("correctAuthors") if isinstance(result.get("correctAuthors"), list) else [])
            corrections = [c for c in proposed if c.has_name] or None
            if corrections:
                recommendations.append("Correct authors have been identified and can be applied.")
        return corrections, recommendations

    def _enrichment_patch(self, task: VerificationTask) -> Optional[EnrichmentPatch]:
        if task.status != TaskStatus.COMPLETED or not task.result:
            return None
        return EnrichmentPatch.model_validate(task.result)
