# summary service: langchain + gemini summary of the entries a viewer may see
#
# pipeline:
#   1. gate on patient access (owner or connected professional)
#   2. keep entries inside the summary window that pass the visibility resolver
#   3. format them into a compact timeline
#   4. generate the summary with gemini
#   5. append generate_ai_summary to the audit log

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import StrOutputParser

from moodflow.config import settings
from moodflow.models.user import Viewer
from moodflow.services import audit
from moodflow.services.db import Database
from moodflow.services.entries import visible_entries

logger = logging.getLogger(__name__)

# cap on entries sent to the llm
MAX_SUMMARY_ENTRIES = 60

EMPTY_SUMMARY = "No entries are available for this period."
FAILED_SUMMARY = "Unable to generate a summary. Please try again."


def get_llm() -> ChatGoogleGenerativeAI:
    """create a gemini llm instance for summaries"""
    return ChatGoogleGenerativeAI(
        model=settings.GEMINI_MODEL,
        google_api_key=settings.GEMINI_API_KEY,
        temperature=0.2,
        max_output_tokens=2048,
    )


SUMMARY_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You are a clinical assistant on the MoodFlow platform.
Summarize a patient's mood journal for the reader described below.

- Describe mood and energy trends over the period
- Point out recurring themes in the text and tags
- Flag any content suggesting crisis or self-harm prominently
- Do not invent entries; work only with the timeline given
- Keep it under 250 words"""),
    ("human", """READER: {audience}
PERIOD: last {window_days} days

TIMELINE:
{timeline}"""),
])

_chain = None


def get_summary_chain():
    """get or create the summary chain"""
    global _chain
    if _chain is None:
        _chain = SUMMARY_PROMPT | get_llm() | StrOutputParser()
    return _chain


def _format_timeline(entries: list[dict]) -> str:
    lines = []
    for e in entries:
        parts = [e.get("timestamp", "")[:10]]
        if e.get("mood") is not None:
            parts.append(f"mood {e['mood']}/5" + (f" ({e['mood_label']})" if e.get("mood_label") else ""))
        if e.get("energy") is not None:
            parts.append(f"energy {e['energy']}/10")
        if e.get("tags"):
            parts.append("tags: " + ", ".join(e["tags"]))
        text = (e.get("text") or "").strip()
        if text:
            parts.append(text[:500])
        lines.append(" | ".join(parts))
    return "\n".join(lines)


def _in_window(entry: dict, since: datetime) -> bool:
    try:
        ts = datetime.fromisoformat(entry.get("timestamp", ""))
    except ValueError:
        return False
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts >= since


async def summarize_entries(entries: list[dict], audience: str, window_days: int) -> str:
    """run the llm over an already-filtered timeline"""
    if not entries:
        return EMPTY_SUMMARY
    try:
        chain = get_summary_chain()
        return await chain.ainvoke({
            "audience": audience,
            "window_days": window_days,
            "timeline": _format_timeline(entries[:MAX_SUMMARY_ENTRIES]),
        })
    except Exception as e:
        logger.error(f"Summary generation failed: {e}")
        return FAILED_SUMMARY


async def generate_summary(
    db: Database,
    viewer: Viewer,
    patient_id: str,
    window_days: Optional[int] = None,
) -> dict:
    window_days = window_days or settings.SUMMARY_WINDOW_DAYS
    since = datetime.now(timezone.utc) - timedelta(days=window_days)

    entries = [e for e in await visible_entries(db, viewer, patient_id) if _in_window(e, since)]
    audience = "the patient themself" if viewer.is_patient else f"their {viewer.specialty}"

    summary = await summarize_entries(entries, audience, window_days)
    await audit.record(db, viewer.id, audit.GENERATE_AI_SUMMARY, patient_id,
                       {"entry_count": len(entries), "window_days": window_days})
    logger.info(f"Summary generated for patient {patient_id} by {viewer.id} ({len(entries)} entries)")
    return {
        "patient_id": patient_id,
        "summary": summary,
        "entry_count": len(entries),
        "window_days": window_days,
    }
