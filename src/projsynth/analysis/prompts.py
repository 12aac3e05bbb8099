"""Prompt templates for the three analysis kinds and long-text summarization."""

from __future__ import annotations

from enum import Enum


class PromptKind(str, Enum):
    SALESFORCE = "salesforce"
    EMAIL = "email"
    IMAGE = "image"


SALESFORCE_PROMPT = """\
You are an expert project management analyst.
Your task is to analyze the provided Salesforce data.
Based on this input, extract the project details.
Your entire output must be a single, valid JSON object conforming to the provided schema.
"""

EMAIL_PROMPT = """\
You are an expert project management analyst.
Your task is to analyze the provided email conversation.
Based on this input, generate a structured JSON object that synthesizes all relevant information.

## INSTRUCTIONS
1. Parse the email thread to identify action items, the conversation flow, and attachments.
2. Scrutinize the conversation for any explicit mentions of file attachments (e.g., "I've attached the 'final_report.pdf'"). For each, list its name and context.
3. Create a high-level summary of the entire email thread.
4. Model the conversation as a series of nodes. Number node_id from 1 within this thread; parent_node_id is the node_id of the message being replied to, or null for a thread root.
5. For each action item, set source_conversation_node_id to the node_id of the message it came from, when known.
6. Your entire output must be a single, valid JSON object conforming to the provided schema.
"""

IMAGE_PROMPT = """\
You are an AI specialist in document digitization and visual analysis, optimized for high-accuracy OCR.
Your task is to meticulously analyze the provided image, "{file_name}", treating it as a potentially scanned document.

## INSTRUCTIONS
1. Prioritize Text Extraction: If the image appears to be a document, focus on extracting all text with the highest possible accuracy.
2. Provide Confidence Scores: For each piece of extracted text, you MUST provide a confidence score from 0.0 (no confidence) to 1.0 (complete confidence) representing the accuracy of the transcription.
3. Summarize Content: Provide a concise summary of the image's content.
4. Detect Objects: Detect key objects and provide their bounding boxes. This is secondary to text extraction if the image is a document.
5. Identify Entities: Identify any part numbers or people visible.
6. Set Filename: Ensure the 'file_name' field in your response is exactly "{file_name}".
7. Format Output: Your entire output must be a single, valid JSON object conforming to the provided schema. Bounding box coordinates must be normalized (0.0 to 1.0).
"""

_RETAIN = (
    "retaining all critical information such as names, dates, financial figures, "
    "action items, and key decisions"
)


def build_prompt(kind: PromptKind, file_name: str) -> str:
    """Return the analysis instructions for *kind*."""
    if kind == PromptKind.SALESFORCE:
        return SALESFORCE_PROMPT
    if kind == PromptKind.EMAIL:
        return EMAIL_PROMPT
    return IMAGE_PROMPT.format(file_name=file_name)


def build_summary_prompt(content_type: str, text: str) -> str:
    return (
        f"Please summarize the following {content_type} document, {_RETAIN}. "
        "The summary needs to be comprehensive yet concise as it will be used by "
        f"another AI for analysis. Here is the document:\n\n---\n\n{text}"
    )


def build_chunk_summary_prompt(content_type: str, chunk: str, index: int, total: int) -> str:
    return (
        f"This is part {index + 1} of {total} of a larger {content_type} document. "
        f"Please summarize the following text, {_RETAIN}. The summary needs to be "
        f"comprehensive yet concise. Here is the text chunk:\n\n---\n\n{chunk}"
    )


def build_combine_summaries_prompt(content_type: str, combined: str) -> str:
    return (
        f"The following are separate summaries from a very long {content_type} document. "
        "Please synthesize them into a single, cohesive final summary, retaining all "
        f"critical details like names, dates, and action items.\n\n---\n\n{combined}"
    )


CHAT_SYSTEM_INSTRUCTION = (
    "You are an expert AI assistant for a project management platform. Your task is to "
    "answer questions about a specific project based ONLY on the JSON data provided in "
    "the user prompt. Do not use any external knowledge or make assumptions beyond this "
    "data. If the answer cannot be found in the provided data, state that clearly. "
    "Provide concise and helpful answers."
)


def build_chat_prompt(context_json: str, question: str) -> str:
    return f'## Project Context Data\n```json\n{context_json}\n```\n\n## User\'s Question\n"{question}"\n'
