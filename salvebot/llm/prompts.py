"""Prompt templates for classification, query rewriting and answering."""

from salvebot.models.chatbot import ChatbotSettings

CLASSIFY_SYSTEM_PROMPT = (
    'Classify the user message as "question", "statement", or "other". '
    "Respond with only one word."
)

HYDE_SYSTEM_PROMPT = (
    "Generate a hypothetical answer to the user's question. Keep it concise and relevant."
)

CONTEXT_MARKER = "Context:"


def build_answer_system_prompt(context: str, settings: ChatbotSettings | None = None) -> str:
    """System prompt binding the model to the retrieved business context."""
    lines = [
        "You are a helpful customer service assistant for this business.",
        "Use only the provided context to answer questions accurately and helpfully.",
        "Keep your responses concise and professional.",
        "If the context does not contain enough information to answer, say politely "
        "that you don't have enough information rather than guessing.",
    ]

    if settings and settings.welcome_message:
        lines.append("")
        lines.append(f"Welcome message: {settings.welcome_message}")

    lines.append("")
    lines.append(CONTEXT_MARKER)
    lines.append(context)

    return "\n".join(lines)
