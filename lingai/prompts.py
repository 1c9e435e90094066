"""Prompt templates for lesson, recap and comic generation.

Templates are ``str.format`` strings; literal braces are doubled.
"""
from typing import Iterable

LESSON_SYSTEM = (
    "You are an experienced language teacher writing short, natural sentences "
    "for beginner learners. Reply with strict JSON only."
)

GENERATE_LESSON = """\
Create a {target_language} lesson for a learner whose own language is {user_language}.
Focus on these topics: {topics}.

Write exactly 5 sentence pairs. Each pair has:
- "target": a natural {target_language} sentence of at most 12 words
- "translation": its {user_language} translation
- "context": optional, one short phrase describing when the sentence is used

Also give the lesson a short "title" (in {user_language}) and a one-line "description".

Return JSON exactly in this shape:
{{"title": "...", "description": "...", "sentences": [{{"target": "...", "translation": "...", "context": "..."}}]}}
"""

RECAP_SYSTEM = (
    "You are an expert {target_language} teacher creating recap lessons in the Assimil method "
    "style. Create comprehensive, educational content that reinforces previous learning."
)

GENERATE_RECAP = """\
## {target_language_title} Recap Generator · Lesson {lesson_number}

You are creating an **Assimil-style recap** for lessons {start}-{end}.
Learners have already encountered this material; the goal is reinforcement through
concise review and contextual practice. No new grammar, only familiar vocabulary.

### INPUT
- **Topics:** {topics}
- **Grammar points:** {grammar_points}
- **Vocabulary topics:** {vocabulary_topics}
- **Canonical sentences**
{sentences}

---

### TASK
Return a single **Markdown** document in exactly this structure:

# Recap: Lessons {start}-{end}

## 1 · Grammar Review
For each grammar point give a brief rule (max 2 lines), 1-2 lesson examples with the
grammar in **bold**, and one fresh example reusing lesson vocabulary.

## 2 · Vocabulary in Context
A two-column table **{target_language_title} | {user_language_title}**, then one short
illustrative sentence per word.

## 3 · Key Sentences
8-10 pivotal sentences, each with a translation and a short note.

## 4 · Practice Exercises
Exactly four exercises: fill-in-the-blank, sentence unscramble, translation into
{target_language_title}, mini-dialogue completion. Put the answer key inside a `<details>` block.

Output only valid Markdown, no code fences or commentary.
"""

COMIC_IMAGE = """\
A friendly four-panel comic strip illustrating a short everyday scene about {topics}.
The scene follows these moments:
{moments}
Bright flat colours, simple expressive characters, clean outlines. No text, captions or speech bubbles.
"""

VOICES = {
    "spanish": "nova",
    "french": "shimmer",
    "german": "echo",
    "italian": "fable",
    "portuguese": "onyx",
}
DEFAULT_VOICE = "alloy"


def render_prompt(template: str, **args) -> str:
    return template.format(**args)


def voice_for(language: str) -> str:
    return VOICES.get((language or "").lower(), DEFAULT_VOICE)


def bullet_list(items: Iterable[str]) -> str:
    return "\n".join(f"- {i}" for i in items) or "- (none)"
