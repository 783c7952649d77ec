"""Fixed assistant definition used for interview-mode calls."""

import copy
from typing import Any, Dict, Iterable, Optional

INTERVIEWER_SYSTEM_PROMPT = """
### You and your role
You are a professional job interviewer running a live voice interview with a candidate.
Assess their qualifications, motivation, and fit for the role.

### Question flow
Work through these questions in order:
{{questions}}

### How to speak
- Listen to each answer and acknowledge it before moving on.
- Ask a short follow-up when an answer is vague or incomplete.
- Keep replies brief: this is a voice conversation, not an essay.
- Be warm and polite, but stay professional.

### Closing
When the questions are done, thank the candidate, tell them the company will be in
touch with feedback, and end the conversation politely.
""".strip()

INTERVIEWER_FIRST_MESSAGE = (
    "Hello! Thank you for taking the time to speak with me today. "
    "I'm looking forward to learning more about you and your experience."
)

INTERVIEWER_ASSISTANT: Dict[str, Any] = {
    "name": "Interviewer",
    "firstMessage": INTERVIEWER_FIRST_MESSAGE,
    "transcriber": {"provider": "deepgram", "model": "nova-2", "language": "en"},
    "voice": {
        "provider": "11labs",
        "voiceId": "sarah",
        "stability": 0.4,
        "similarityBoost": 0.8,
        "speed": 0.9,
        "style": 0.5,
        "useSpeakerBoost": True,
    },
    "model": {
        "provider": "openai",
        "model": "gpt-4",
        "messages": [{"role": "system", "content": INTERVIEWER_SYSTEM_PROMPT}],
    },
}


def interviewer_assistant() -> Dict[str, Any]:
    """Return a copy of the interviewer assistant that callers may modify."""
    return copy.deepcopy(INTERVIEWER_ASSISTANT)


def format_questions(questions: Optional[Iterable[str]]) -> str:
    """Render questions as a bulleted list, one ``- question`` per line."""
    if not questions:
        return ""
    return "\n".join(f"- {question}" for question in questions)
