from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

import structlog

from agenda.connectors.llm import LLMConfig, LLMGateway, extract_json_object
from agenda.core.heuristics import rule_based_extract
from agenda.core.normalize import reconcile
from agenda.forms.fields import date_fields, field_specs

log = structlog.get_logger()

EXTRACTION_SYSTEM_INSTRUCTION = "你是一个表单字段提取助手。只返回 JSON 对象，不要添加任何解释文字。"

EXTRACTION_PROMPT_TEMPLATE = """\
请从用户输入中提取以下字段的值。

当前表单类型: {form_name}
今天是 {today}
{asking_line}
需要提取的字段:
{field_lines}{duration_note}

用户输入: "{user_input}"

请提取用户输入中涉及的字段值，以 JSON 格式返回。
注意:
1. 用户的回答通常对应当前正在询问的字段，请优先匹配 [当前询问] 标注的字段
2. 必须使用上方列出的字段名（如 {key_examples}），不要使用其他名称
3. 相对日期保持原样返回（如"后天"、"明天"、"下周一"），后续会统一转换
4. 具体日期请转换为 YYYY-MM-DD 格式
5. 时间字段请转换为 HH:mm 格式（如 "15:00"）
6. 如果用户输入不包含任何有效字段信息，返回空对象 {{}}

示例:
{examples}
"""

_FORM_NAMES = {"meeting": "会议创建", "trip": "出差申请"}

_EXAMPLES = {
    "meeting": (
        '- 用户说"下午3点开始，开1小时" → {"startTime": "15:00", "duration": "1小时"}\n'
        '- 用户说"A会议室" → {"location": "A会议室"}\n'
        '- 用户说"中型" → {"roomType": "中型会议室"}'
    ),
    "trip": (
        '- 当前询问"返回日期"，用户说"后天" → {"endDate": "后天"}\n'
        '- 当前询问"返回时间"，用户说"下午5点半" → {"endTime": "17:30"}\n'
        '- 当前询问"出行方式"，用户说"飞机" → {"transport": "飞机"}\n'
        '- 当前询问"出差事由"，用户说"客户拜访" → {"reason": "客户拜访"}'
    ),
}

DURATION_NOTE = '\n- duration (会议时长), 如用户说"1小时"、"半小时"、"90分钟"等'


def build_extraction_prompt(
    workflow: str,
    missing_fields: Iterable[str],
    user_input: str,
    asked_field: str | None = None,
    today: date | None = None,
) -> str:
    specs = field_specs(workflow)
    missing = list(missing_fields)

    lines = []
    for key in missing:
        spec = specs.get(key)
        if spec is None:
            lines.append(f"- {key}")
            continue
        line = f"- {key} ({spec.label})"
        if spec.options:
            line += f", 可选值: {'/'.join(spec.options)}"
        if key == asked_field:
            line += " [当前询问]"
        lines.append(line)

    asking_line = ""
    if asked_field:
        spec = specs.get(asked_field)
        asking_line = f"当前正在询问: {spec.label if spec else asked_field}\n"

    return EXTRACTION_PROMPT_TEMPLATE.format(
        form_name=_FORM_NAMES.get(workflow, workflow),
        today=(today or date.today()).isoformat(),
        asking_line=asking_line,
        field_lines="\n".join(lines),
        duration_note=DURATION_NOTE if workflow == "meeting" and "endTime" in missing else "",
        user_input=user_input,
        key_examples=", ".join(missing[:3]) or "title",
        examples=_EXAMPLES.get(workflow, ""),
    )


def parse_extracted_fields(text: str | None) -> dict[str, Any]:
    """First JSON object in the raw model text, or an empty dict."""
    return extract_json_object(text) or {}


class FieldExtractionEngine:
    """Pulls the missing fields of a workflow out of one user utterance.

    The LLM is tried first and only the requested keys of its answer are kept.
    When it fails or answers none of them, the rule-based extractor runs
    instead. Both results go through the same reconciliation (duration,
    relative dates, transport words). Never raises.
    """

    def __init__(self, gateway: LLMGateway) -> None:
        self._gateway = gateway

    async def extract_fields(
        self,
        workflow: str,
        missing_fields: Iterable[str],
        user_input: str,
        asked_field: str | None = None,
        llm_config: LLMConfig | None = None,
        current: Mapping[str, Any] | None = None,
        instruction: str | None = None,
        today: date | None = None,
    ) -> dict[str, Any]:
        missing = list(missing_fields)
        if not missing or not user_input.strip():
            return {}
        today = today or date.today()

        extracted: dict[str, Any] = {}
        source = "llm"
        if llm_config is not None:
            prompt = build_extraction_prompt(workflow, missing, user_input, asked_field, today)
            system_instruction = EXTRACTION_SYSTEM_INSTRUCTION
            if instruction:
                system_instruction = f"{instruction}\n\n{EXTRACTION_SYSTEM_INSTRUCTION}"
            result = await self._gateway.call(prompt, system_instruction, llm_config)
            if result.ok:
                wanted = set(missing)
                if "endTime" in wanted:
                    wanted.add("duration")
                answered = {k: v for k, v in (result.data or {}).items() if v not in (None, "", [])}
                extracted = {k: v for k, v in answered.items() if k in wanted}
                if len(extracted) < len(answered):
                    log.info(
                        "extraction.unexpected_keys",
                        workflow=workflow,
                        keys=sorted(set(answered) - wanted),
                    )
            else:
                log.info("extraction.llm_unavailable", workflow=workflow, failure=str(result.failure))

        if not extracted:
            source = "rules"
            extracted = rule_based_extract(workflow, user_input, missing, asked_field)

        reconciled = reconcile(extracted, current, date_fields(workflow), today)
        log.info(
            "extraction.done",
            workflow=workflow,
            source=source,
            asked_field=asked_field,
            fields=sorted(reconciled),
        )
        return reconciled
