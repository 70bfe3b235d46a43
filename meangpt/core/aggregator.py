"""Synthesis of a consensus ("mean") answer and a judged-best answer."""

import asyncio
import logging
import re
from dataclasses import replace
from typing import List, Optional

from ..providers.base import BaseProvider, Message, ProviderResponse, SendOptions
from .exceptions import AggregationSynthesisError
from .orchestrator import AggregatedResult

logger = logging.getLogger(__name__)


ALL_FAILED_ANSWER = "All AI providers failed to respond."
NO_RESPONSES_ANSWER = "No responses available."
UNABLE_TO_AVERAGE = "Unable to calculate mean"

NUMERIC_PATTERN = re.compile(r"^\$?[\d,]+\.?\d*$")
NUMBER_TOKEN = re.compile(r"\$?([\d,]+\.?\d*)")

MEAN_SYSTEM_PROMPT = (
    "You are MeanGPT, an AI that synthesizes multiple AI responses into a consensus answer."
)
BEST_SYSTEM_PROMPT = (
    "You are MeanGPT, an AI that evaluates and selects the best response from multiple AI providers."
)

SYNTHESIS_OPTIONS = SendOptions(temperature=0.3, max_tokens=8000)


class ResponseAggregator:
    """
    Turns raw provider outputs into a mean answer and a best answer.

    Both answers come from a designated synthesis provider. When it is
    missing or fails, deterministic fallbacks are used instead: a numeric
    mean (or a labeled concatenation) for the mean answer, and the first
    valid response for the best answer.
    """

    def __init__(self, synthesizer: Optional[BaseProvider] = None):
        self.synthesizer = synthesizer

    async def analyze_responses(
        self,
        aggregated: AggregatedResult,
        original_question: str,
    ) -> AggregatedResult:
        valid = [r for r in aggregated.responses if r.ok]

        if not valid:
            return replace(
                aggregated,
                mean_answer=ALL_FAILED_ANSWER,
                best_answer=NO_RESPONSES_ANSWER,
            )

        if len(valid) == 1:
            mean_answer = await self.calculate_mean_answer(
                valid, original_question, aggregated.responses
            )
            return replace(aggregated, mean_answer=mean_answer, best_answer=valid[0].content)

        mean_answer, best_answer = await asyncio.gather(
            self.calculate_mean_answer(valid, original_question, aggregated.responses),
            self.select_best_answer(valid, original_question),
        )
        return replace(aggregated, mean_answer=mean_answer, best_answer=best_answer)

    async def calculate_mean_answer(
        self,
        valid: List[ProviderResponse],
        original_question: str,
        all_responses: List[ProviderResponse],
    ) -> str:
        prompt = self.create_mean_analysis_prompt(all_responses, original_question)
        try:
            return await self._synthesize(MEAN_SYSTEM_PROMPT, prompt)
        except AggregationSynthesisError as e:
            logger.warning(f"Mean synthesis unavailable, using fallback: {e}")
            return self.simple_average(valid)

    async def select_best_answer(
        self,
        valid: List[ProviderResponse],
        original_question: str,
    ) -> str:
        prompt = self.create_best_answer_prompt(valid, original_question)
        try:
            return await self._synthesize(BEST_SYSTEM_PROMPT, prompt)
        except AggregationSynthesisError as e:
            logger.warning(f"Best-answer synthesis unavailable, using first response: {e}")
            return valid[0].content

    async def _synthesize(self, system_prompt: str, prompt: str) -> str:
        if self.synthesizer is None:
            raise AggregationSynthesisError("No synthesis provider configured")

        response = await self.synthesizer.send_message(
            [
                Message(role="system", content=system_prompt),
                Message(role="user", content=prompt),
            ],
            SYNTHESIS_OPTIONS,
        )
        if response.error:
            raise AggregationSynthesisError(response.error)
        if not response.content:
            raise AggregationSynthesisError("Empty synthesis response")
        return response.content

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    @staticmethod
    def create_mean_analysis_prompt(responses: List[ProviderResponse], question: str) -> str:
        def body(r: ProviderResponse) -> str:
            if r.error:
                return f"*Error: {r.error}*"
            return r.content or "*No response received*"

        responses_text = "\n\n---\n\n".join(
            f"**{r.descriptor.display_name}:** {body(r)}" for r in responses
        )

        return f"""Original Question: "{question}"

Here are the individual AI responses:

{responses_text}

Your task: Analyze these responses and provide a synthesized answer. Return your response in this EXACT format:

## AI Responses

{responses_text}

---

## Consolidated Answer

**Answer:** [Your direct, clear answer to the question]

**Key Details:** [2-3 most important supporting facts]

**Note:** [Any important caveats if needed]

IMPORTANT: You must include both the AI Responses section (exactly as shown above) AND the Consolidated Answer section. Do not truncate or skip either section."""

    @staticmethod
    def create_best_answer_prompt(responses: List[ProviderResponse], question: str) -> str:
        responses_text = "\n\n---\n\n".join(
            f"{r.descriptor.display_name}:\n{r.content}" for r in responses
        )

        return f"""Original Question: "{question}"

The following are responses from different AI providers:

{responses_text}

---

Evaluate these responses and provide what you consider the BEST answer based on:
1. Accuracy and correctness
2. Completeness
3. Clarity and coherence
4. Relevance to the question

Either select and refine one of the existing answers, or create an improved version that addresses any shortcomings."""

    # ------------------------------------------------------------------
    # Deterministic fallbacks
    # ------------------------------------------------------------------

    def simple_average(self, responses: List[ProviderResponse]) -> str:
        contents = [r.content for r in responses if r.content]

        if self.are_numeric_responses(contents):
            return self.calculate_numeric_mean(contents)

        return f"Combined response from {len(responses)} AIs:\n\n" + "\n\n".join(
            f"{r.descriptor.display_name}: {r.content}" for r in responses
        )

    @staticmethod
    def are_numeric_responses(contents: List[str]) -> bool:
        def numeric(content: str) -> bool:
            trimmed = content.strip()
            if NUMERIC_PATTERN.match(trimmed):
                return True
            return any(NUMERIC_PATTERN.match(line.strip()) for line in trimmed.split("\n"))

        return bool(contents) and all(numeric(c) for c in contents)

    @staticmethod
    def calculate_numeric_mean(contents: List[str]) -> str:
        numbers = []
        for content in contents:
            match = NUMBER_TOKEN.search(content)
            if not match:
                continue
            try:
                value = float(match.group(1).replace(",", ""))
            except ValueError:
                continue
            if value > 0:
                numbers.append(value)

        if not numbers:
            return UNABLE_TO_AVERAGE

        mean = sum(numbers) / len(numbers)
        return f"Mean value: ${mean:.2f}"

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @staticmethod
    def create_formatted_response(aggregated: AggregatedResult) -> str:
        formatted = "## AI Responses Summary\n\n"

        for response in aggregated.responses:
            formatted += f"### {response.descriptor.display_name}\n"
            if response.error:
                formatted += f"*Error: {response.error}*\n\n"
            else:
                formatted += f"{response.content}\n\n"

        if aggregated.mean_answer:
            formatted += f"---\n\n## Mean Answer\n{aggregated.mean_answer}\n\n"

        if aggregated.best_answer and aggregated.best_answer != aggregated.mean_answer:
            formatted += f"## Best Answer\n{aggregated.best_answer}\n\n"

        return formatted
