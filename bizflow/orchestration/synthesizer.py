from __future__ import annotations

from typing import Any, Mapping, Sequence

from ..core.config import Settings
from ..core.logging import get_logger
from ..schemas.orchestrator import AgentOutput
from ..services.completion import Completer, user_message
from ..services.translation import TranslationService, language_name

logger = get_logger(name=__name__)

EMPTY_REPLY_TEXT = "Thanks for sharing that."


def _question_text(next_question: Mapping[str, Any] | str) -> tuple[str, str]:
    if isinstance(next_question, str):
        return next_question, "text"
    text = next_question.get("question") or next_question.get("prompt") or ""
    return str(text), str(next_question.get("type") or "text")


class ResponseSynthesizer:
    """Condenses agent outputs into one short reply in the user's language."""

    def __init__(
        self,
        settings: Settings,
        *,
        completion: Completer,
        translator: TranslationService | None = None,
    ) -> None:
        self._settings = settings
        self._completion = completion
        self._translator = translator

    def system_prompt(self, target_name: str, non_english: bool) -> str:
        synthesis = self._settings.synthesis
        language_rule = f"- Respond in {target_name}." if non_english else "- Respond in English."
        return (
            f"You are {synthesis.advisor_name}, a friendly business advisor. "
            "Keep responses short (2-3 sentences max).\n\n"
            "Rules:\n"
            f"{language_rule}\n"
            "- Be warm and natural.\n"
            "- Never use placeholder brackets like [something].\n"
            "- Never include language codes such as te-IN in the reply.\n"
            "- Stay on the question being asked and do not invent new topics."
        )

    def user_prompt(
        self,
        message: str,
        next_question: Mapping[str, Any] | str | None,
        target_name: str,
        agent_outputs: Sequence[AgentOutput] = (),
    ) -> str:
        language_rule = f"Respond in {target_name} only." if target_name != "English" else "Respond in English only."
        insights = [
            f"- {output.agent_name}: {output.output.strip()}"
            for output in agent_outputs
            if output.success and output.output.strip()
        ]
        notes = ""
        if insights:
            notes = "Specialist notes you may draw on:\n" + "\n".join(insights) + "\n\n"

        if next_question:
            question, kind = _question_text(next_question)
            about = "providing information" if kind == "text" else kind
            words = self._settings.synthesis.max_reply_words
            return (
                f'The user answered: "{message}"\n'
                f"The question they answered was about: {about}\n\n"
                f"{notes}"
                f'Now ask them: "{question}"\n\n'
                f"Write a short response (under {words} words) that briefly acknowledges what they said "
                f"and then asks the next question naturally.\n\n{language_rule}"
            )
        return (
            f'The user said: "{message}"\n\n'
            f"{notes}"
            f"Write a brief, friendly acknowledgment (1-2 sentences). {language_rule}"
        )

    async def synthesize(
        self,
        agent_outputs: Sequence[AgentOutput],
        message: str,
        *,
        next_question: Mapping[str, Any] | str | None = None,
        language: str | None = None,
    ) -> str:
        synthesis = self._settings.synthesis
        target_name = language_name(language)
        non_english = bool(language) and target_name != "English"
        try:
            result = await self._completion.complete(
                self.system_prompt(target_name, non_english),
                [user_message(self.user_prompt(message, next_question, target_name, agent_outputs))],
                temperature=synthesis.temperature,
                max_tokens=synthesis.max_tokens,
            )
            reply = result.text.strip() or EMPTY_REPLY_TEXT
            if non_english and language:
                reply = await self._translate(reply, language)
            return reply
        except Exception as exc:
            logger.error("synthesis_failed", error=str(exc), error_type=type(exc).__name__)
            return synthesis.fallback_text

    async def _translate(self, text: str, language: str) -> str:
        if self._translator is None:
            return text
        try:
            translated = await self._translator.translate(text, language)
        except Exception as exc:
            logger.warning("synthesis_translation_failed", language=language, error=str(exc))
            return text
        if not translated.success:
            logger.warning("synthesis_translation_failed", language=language, error=translated.error)
            return text
        return translated.translated_text
