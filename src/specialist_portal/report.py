"""Print-exact progress reports.

A :class:`ReportPayload` is bound into a Jinja2 print template and handed to a
:class:`PdfEngine`. Engines are heavyweight, so each export acquires its own
through :func:`acquire_engine` and releases it on every exit path. Output is
only returned when it carries the PDF signature; anything else is a
:class:`RenderFailure`.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from statistics import mean
from typing import Any, Callable, Iterator, List, Optional, Protocol, Sequence

from fastapi.templating import Jinja2Templates

from .analytics import round_half_up
from .config import settings
from .models import ReportPayload, ReportSessionRow, SessionSummary, SpecialistRow
from .normalizer import parse_timestamp

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=settings.TEMPLATE_DIR)

PDF_SIGNATURE = b"%PDF"


class RenderFailure(Exception):
    """The rendering engine did not produce a valid document."""


# --- Engine ---
@dataclass(frozen=True)
class RenderOptions:
    page_size: str = settings.REPORT_PAGE_SIZE
    landscape: bool = True
    print_background: bool = True
    margin: str = "0"
    media: str = "print"

    def page_css(self) -> str:
        orientation = "landscape" if self.landscape else "portrait"
        css = f"@page {{ size: {self.page_size} {orientation}; margin: {self.margin}; }}"
        if self.print_background:
            css += " html { -webkit-print-color-adjust: exact; print-color-adjust: exact; }"
        return css


class PdfEngine(Protocol):
    def render(self, html: str, options: RenderOptions) -> bytes: ...

    def close(self) -> None: ...


class WeasyPrintEngine:
    """Headless HTML-to-PDF engine backed by WeasyPrint.

    The engine's resource is its ``FontConfiguration``, which owns the
    fontconfig state and the files fetched for ``@font-face`` rules.
    :meth:`close` drops it so they are freed with the object, and any later
    :meth:`render` call fails.
    """

    def __init__(self, base_url: Optional[str] = None):
        from weasyprint.text.fonts import FontConfiguration

        self.base_url = base_url
        self.font_config = FontConfiguration()

    def render(self, html: str, options: RenderOptions) -> bytes:
        if self.font_config is None:
            raise RenderFailure("Rendering engine already released")

        from weasyprint import CSS, HTML

        page_css = CSS(string=options.page_css(), font_config=self.font_config)
        document = HTML(string=html, base_url=self.base_url, media_type=options.media)
        return document.write_pdf(stylesheets=[page_css], font_config=self.font_config)

    def close(self) -> None:
        self.font_config = None


EngineFactory = Callable[[], PdfEngine]


@contextmanager
def acquire_engine(factory: EngineFactory) -> Iterator[PdfEngine]:
    engine = factory()
    try:
        yield engine
    finally:
        engine.close()


def ensure_document(buffer: Any, verbose: bool = settings.verbose_errors) -> bytes:
    data = bytes(buffer) if isinstance(buffer, (bytes, bytearray)) else str(buffer or "").encode()
    if data[:4] == PDF_SIGNATURE:
        return data
    if verbose:
        snippet = data[: settings.RENDER_SNIPPET_LENGTH].decode("utf-8", errors="replace")
        raise RenderFailure(f"Rendered output is not a PDF document: {snippet!r}")
    raise RenderFailure("Report generation failed")


def render_document(
    html: str,
    engine_factory: EngineFactory,
    options: Optional[RenderOptions] = None,
    verbose: bool = settings.verbose_errors,
) -> bytes:
    try:
        with acquire_engine(engine_factory) as engine:
            buffer = engine.render(html, options or RenderOptions())
    except RenderFailure:
        raise
    except Exception as exc:
        logger.exception("Rendering engine failed")
        message = f"Rendering engine failed: {exc}" if verbose else "Report generation failed"
        raise RenderFailure(message) from exc
    return ensure_document(buffer, verbose)


# --- Payload ---
def format_date(value: Any) -> str:
    """DD/MM/YYYY, or an empty string when the value is not a date."""
    moment = value if isinstance(value, datetime) else parse_timestamp(value)
    if moment is None:
        return ""
    return moment.strftime("%d/%m/%Y")


def session_row(session: SessionSummary) -> ReportSessionRow:
    return ReportSessionRow(
        date=format_date(session.session_date),
        total_attempts=session.total_attempts,
        successful_attempts=session.successful_attempts,
        failed_attempts=session.failed_attempts,
        success_rate=round_half_up(session.success_rate),
        average_score=round_half_up(session.average_score),
        duration=session.duration,
    )


def best_session(sessions: Sequence[SessionSummary]) -> Optional[SessionSummary]:
    best = None
    for session in sessions:
        if best is None or session.average_score > best.average_score:
            best = session
    return best


def worst_session(sessions: Sequence[SessionSummary]) -> Optional[SessionSummary]:
    worst = None
    for session in sessions:
        if worst is None or session.average_score < worst.average_score:
            worst = session
    return worst


def build_report_payload(analytics, generated_at: Optional[datetime] = None) -> ReportPayload:
    sessions: List[SessionSummary] = list(analytics.sessions)
    recent = sessions[-settings.RECENT_WINDOW:]
    best = best_session(sessions)
    worst = worst_session(sessions)
    learner = analytics.learner

    return ReportPayload(
        learner_id=str(analytics.learner_id),
        learner_name=str(learner.get("name") or ""),
        learner_age=learner.get("age"),
        generated_at=format_date(generated_at or datetime.now(timezone.utc)),
        stats=analytics.stats,
        chart_data=analytics.chart_data,
        best_session=session_row(best) if best else None,
        worst_session=session_row(worst) if worst else None,
        first_session_date=format_date(sessions[0].session_date) if sessions else "",
        last_session_date=format_date(sessions[-1].session_date) if sessions else "",
        recent_average_score=round_half_up(mean(s.average_score for s in recent)) if recent else 0,
        recent_success_rate=round_half_up(mean(s.success_rate for s in recent)) if recent else 0,
        recent_sessions=[session_row(s) for s in reversed(sessions[-settings.RECENT_TABLE_ROWS:])],
        final_word_analysis=analytics.final_words,
    )


def render_report_html(payload: ReportPayload) -> str:
    return templates.get_template("report.html").render(report=payload)


def render_report(
    analytics,
    engine_factory: EngineFactory,
    verbose: bool = settings.verbose_errors,
) -> bytes:
    payload = build_report_payload(analytics)
    pdf = render_document(render_report_html(payload), engine_factory, verbose=verbose)
    logger.info(f"Report for learner {payload.learner_id} rendered ({len(pdf)} bytes)")
    return pdf


# --- Specialists list ---
def specialist_rows(raw: Any) -> List[SpecialistRow]:
    rows = []
    for item in raw if isinstance(raw, list) else []:
        if not isinstance(item, dict):
            continue
        rows.append(
            SpecialistRow(
                name=str(item.get("name") or ""),
                email=str(item.get("email") or ""),
                phone=str(item.get("phone") or "N/A"),
                staff_id=str(item.get("staffId") or "N/A"),
                specialization=str(item.get("specialization") or "N/A"),
                joined_date=format_date(item.get("createdAt")),
            )
        )
    return rows


def render_specialists_report(
    rows: Sequence[SpecialistRow],
    engine_factory: EngineFactory,
    verbose: bool = settings.verbose_errors,
) -> bytes:
    html = templates.get_template("specialists_report.html").render(
        title="Specialists List",
        rows=rows,
        generated_at=format_date(datetime.now(timezone.utc)),
    )
    return render_document(html, engine_factory, verbose=verbose)
