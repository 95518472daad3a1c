"""Prompt templates for semantic-unit annotations."""

from __future__ import annotations

from typing import Any

UNIT_SYSTEM_PROMPT = """You are a senior software engineer who explains code clearly and briefly.
You receive one function with every line prefixed by its 1-based line number.
Split the function into semantic units (a declaration, a guard, a loop, a block
that computes one value, the return) and explain each unit in one short sentence.

Reply with one unit per line using exactly this format and nothing else:
<line number> | <explanation>

The line number is the first line of the unit. The first unit must start at
line 1 and describe what the whole function does. Do not add code fences."""

FUNCTION_SYSTEM_PROMPT = (
    "You are a senior software engineer who explains code clearly. "
    "Answer with plain prose only, no code fences and no JSON."
)

_EXAMPLES: tuple[tuple[str, str, str], ...] = (
    (
        "typescript",
        "function clamp(value: number, lo: number, hi: number) {\n"
        "  if (lo > hi) {\n"
        "    throw new Error('empty range');\n"
        "  }\n"
        "  return Math.min(Math.max(value, lo), hi);\n"
        "}\n",
        "1 | Limits a number to the inclusive range [lo, hi].\n"
        "2 | Rejects ranges whose lower bound exceeds the upper bound.\n"
        "5 | Returns the value pushed up to lo and down to hi.",
    ),
    (
        "python",
        "def word_counts(lines):\n"
        "    counts = {}\n"
        "    for line in lines:\n"
        "        for word in line.split():\n"
        "            counts[word] = counts.get(word, 0) + 1\n"
        "    return sorted(counts.items(), key=lambda item: -item[1])\n",
        "1 | Counts word frequencies across lines, most frequent first.\n"
        "2 | Starts an empty word-to-count mapping.\n"
        "3 | Walks every word of every line and increments its count.\n"
        "6 | Returns (word, count) pairs ordered by descending count.",
    ),
)


def number_lines(code: str) -> str:
    """Prefix every line of *code* with its 1-based line number."""

    lines = code.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines = lines[:-1]
    return "\n".join(f"{index}: {line}" for index, line in enumerate(lines, start=1))


def _unit_request(code: str, language: str) -> str:
    return (
        f"Annotate the semantic units of this {language or 'source'} function.\n\n"
        f"{number_lines(code)}"
    )


def build_unit_messages(code: str, language: str) -> list[dict[str, Any]]:
    """Return the chat messages asking for per-unit annotations of *code*."""

    messages: list[dict[str, Any]] = [{"role": "system", "content": UNIT_SYSTEM_PROMPT}]
    for example_language, example_code, example_answer in _EXAMPLES:
        messages.append({"role": "user", "content": _unit_request(example_code, example_language)})
        messages.append({"role": "assistant", "content": example_answer})
    messages.append({"role": "user", "content": _unit_request(code, language)})
    return messages


def build_function_summary_messages(code: str, language: str) -> list[dict[str, Any]]:
    """Return the chat messages asking for a 1-3 sentence summary of *code*."""

    return [
        {"role": "system", "content": FUNCTION_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f"Provide a concise summary (1-3 sentences) of the following {language or 'source'} function.\n\n"
                f"{code}"
            ),
        },
    ]
