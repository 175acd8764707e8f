from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

import structlog

from agenda.connectors.llm import LLMConfig
from agenda.core.extraction import FieldExtractionEngine
from agenda.core.intent_matcher import IntentMatchEngine
from agenda.core.schedule_store import ScheduleStore
from agenda.forms.fields import WORKFLOWS, MeetingFields, TripFields, clear_fields, empty_record, merge_fields
from agenda.forms.tracker import FormCompletionTracker, tracker_for
from agenda.schemas.command import SubmitResponse, TurnResponse, UIAction
from agenda.schemas.match import MatchResult
from agenda.skills.registry import SkillRegistry

log = structlog.get_logger()

CONFIRM_WORDS = {"确认", "提交", "确定", "是", "好的", "confirm", "yes", "ok"}
CANCEL_WORDS = {"取消", "算了", "不用了", "cancel"}


@dataclass
class FormSession:
    """Progress of one form workflow inside a conversation."""

    workflow: str
    skill_name: str
    record: MeetingFields | TripFields
    asked: set[str] = field(default_factory=set)
    asking: str | None = None
    ready: bool = False


class ConversationDispatcher:
    """Routes each user turn: match a skill, then fill its form field by field.

    Skills whose category is not a form workflow emit their UI action right
    away. Form workflows ask for one missing field per turn and emit the UI
    action with the collected values once every required field is present.
    """

    def __init__(
        self,
        registry: SkillRegistry,
        matcher: IntentMatchEngine,
        extractor: FieldExtractionEngine,
        store: ScheduleStore,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._registry = registry
        self._matcher = matcher
        self._extractor = extractor
        self._store = store
        self._today = today
        self._sessions: dict[str, FormSession] = {}

    def session(self, session_id: str) -> FormSession | None:
        return self._sessions.get(session_id)

    def reset(self, session_id: str) -> bool:
        dropped = self._sessions.pop(session_id, None) is not None
        if dropped:
            log.info("dispatch.session_reset", session_id=session_id)
        return dropped

    async def handle_turn(self, session_id: str, text: str, llm_config: LLMConfig) -> TurnResponse:
        session = self._sessions.get(session_id)
        word = text.strip().lower()

        if session is not None and word in CANCEL_WORDS:
            self.reset(session_id)
            return TurnResponse(reply="好的，已取消当前操作。")

        if session is not None and session.ready and word in CONFIRM_WORDS:
            result = self.submit(session_id)
            return TurnResponse(
                reply=result.reply,
                workflow=session.workflow,
                skill_name=session.skill_name,
                ready_to_submit=not result.success and session.ready,
            )

        match: MatchResult | None = None
        if session is None:
            match = await self._matcher.match_skill(text, llm_config)
            if not match.matched:
                log.info("dispatch.no_skill", session_id=session_id, reasoning=match.reasoning)
                return TurnResponse(reply=self._fallback_reply(), match=match)

            skill = self._registry.get(match.skill_name)
            if skill is None:
                return TurnResponse(reply=self._fallback_reply(), match=match)

            category = skill.metadata.category
            if category not in WORKFLOWS:
                log.info("dispatch.direct_action", session_id=session_id, skill=skill.name)
                return TurnResponse(
                    reply=f"好的，正在为你处理「{skill.name}」。",
                    skill_name=skill.name,
                    match=match,
                    ui_action=UIAction(name=skill.metadata.action, params={"query": text}),
                )

            session = FormSession(workflow=category, skill_name=skill.name, record=empty_record(category))
            self._sessions[session_id] = session
            log.info("dispatch.session_started", session_id=session_id, workflow=category, skill=skill.name)

        return await self._fill(session_id, session, text, llm_config, match)

    async def _fill(
        self,
        session_id: str,
        session: FormSession,
        text: str,
        llm_config: LLMConfig,
        match: MatchResult | None,
    ) -> TurnResponse:
        tracker = tracker_for(session.workflow)
        if tracker is None:
            log.warning("dispatch.unknown_workflow", session_id=session_id, workflow=session.workflow)
            self.reset(session_id)
            return TurnResponse(reply=self._fallback_reply(), match=match)

        status = tracker.evaluate_completion(session.record)
        # A complete form can still be corrected, so every field is open again.
        correcting = session.ready or status.completed
        targets = list(tracker.specs) if correcting else status.missing_fields
        instruction = self._registry.get_instruction(session.skill_name)
        extracted = await self._extractor.extract_fields(
            session.workflow,
            targets,
            text,
            asked_field=None if correcting else session.asking,
            llm_config=llm_config,
            current=session.record.values(),
            instruction=instruction.instructions if instruction else None,
            today=self._today(),
        )
        session.record = merge_fields(session.record, extracted)
        status = tracker.evaluate_completion(session.record)
        form = tracker.generate_task_form(session.record)

        log.info(
            "dispatch.turn",
            session_id=session_id,
            workflow=session.workflow,
            extracted=sorted(extracted),
            missing=status.missing_fields,
        )

        if status.completed:
            session.ready = True
            session.asking = None
            preview = tracker.create_schedule_from_form(session.record)
            action = self._registry.get_action(session.skill_name) or ""
            return TurnResponse(
                reply=tracker.confirmation_prompt(preview),
                workflow=session.workflow,
                skill_name=session.skill_name,
                match=match,
                form=form,
                ready_to_submit=True,
                ui_action=UIAction(name=action, params=session.record.values()) if action else None,
            )

        session.ready = False
        next_key = tracker.next_field(session.record, session.asked)
        if next_key is not None:
            session.asked.add(next_key)
            session.asking = next_key
            reply = tracker.ask_prompt(next_key, session.record)
        else:
            session.asking = None
            reply = tracker.format_status(status)

        return TurnResponse(
            reply=reply,
            workflow=session.workflow,
            skill_name=session.skill_name,
            match=match,
            form=form,
        )

    def submit(self, session_id: str) -> SubmitResponse:
        session = self._sessions.get(session_id)
        if session is None:
            return SubmitResponse(success=False, errors=["没有进行中的表单"], reply="当前没有需要提交的内容。")

        tracker = tracker_for(session.workflow)
        if tracker is None:
            return SubmitResponse(
                success=False, errors=[f"不支持的表单类型：{session.workflow}"], reply="当前没有需要提交的内容。"
            )

        errors = tracker.validate_form(session.record)
        if errors:
            reply = "提交失败：\n" + "\n".join(f"- {e}" for e in errors)
            question = self._reopen(session, tracker)
            if question:
                reply = f"{reply}\n\n{question}"
            log.info("dispatch.submit_rejected", session_id=session_id, asking=session.asking)
            return SubmitResponse(success=False, errors=errors, reply=reply)

        event = self._store.add(tracker.create_schedule_from_form(session.record))
        self._sessions.pop(session_id, None)
        log.info("dispatch.submitted", session_id=session_id, event_id=event.id, workflow=session.workflow)
        return SubmitResponse(success=True, event=event, reply=f"✅ 已创建日程：{event.content}")

    def _reopen(self, session: FormSession, tracker: FormCompletionTracker) -> str | None:
        """Empty the fields that failed validation and ask for the first of them."""
        invalid = tracker.invalid_fields(session.record)
        if invalid:
            session.record = clear_fields(session.record, invalid)
        session.ready = False
        key = invalid[0] if invalid else tracker.next_field(session.record)
        session.asking = key
        if key is None:
            return None
        session.asked.add(key)
        return tracker.ask_prompt(key, session.record)

    def _fallback_reply(self) -> str:
        summary = self._registry.metadata_summary()
        if not summary:
            return "抱歉，我暂时无法处理这个请求。"
        return f"抱歉，我没有理解你的需求。我可以帮你：\n{summary}"
