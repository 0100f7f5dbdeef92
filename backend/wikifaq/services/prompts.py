"""
Prompt text and tool schemas for FAQ generation.

Both passes share one item schema; the second pass differs in its list field
name (``additional_faqs``) and in telling the model what already exists.
"""

from typing import Any, Dict, Iterable, List

from wikifaq.schemas.faq import FaqItem

FIRST_PASS_TOOL = "generate_structured_faqs"
SECOND_PASS_TOOL = "generate_additional_faqs"


_CROSS_LINKS_DESCRIPTION = (
    "Wikipedia articles relevant to this question and answer, other than the page "
    "being summarised. Only full articles that exist on Wikipedia. Give the bare "
    "article name, e.g. Pro_Football_Hall_of_Fame, never /wiki/Pro_Football_Hall_of_Fame. "
    "No anchor links such as Auckland_Zoo#Major_exhibits and nothing marked "
    "'(Redirected from ...)'."
)

_MEDIA_LINKS_DESCRIPTION = (
    "Image URLs relevant to this question, copied exactly as listed in the content. "
    "Each must start with https:// (not 'url:https://'). Never use the same image for "
    "more than one question. Leave empty when no image adds value."
)

_ANSWER_DESCRIPTION = (
    "The answer. Rich in facts and specifics (names, dates, places, numbers) but "
    "engaging for a general audience. At least 3 sentences, ideally up to 10, with no "
    "filler."
)


def _item_schema(question_description: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "subheader": {
                "type": "string",
                "description": (
                    "Section of the page this question belongs to. Skip sections with "
                    "fewer than 2 sentences about the subject."
                ),
            },
            "question": {"type": "string", "description": question_description},
            "answer": {"type": "string", "description": _ANSWER_DESCRIPTION},
            "cross_links": {
                "type": "array",
                "items": {"type": "string"},
                "description": _CROSS_LINKS_DESCRIPTION,
            },
            "media_links": {
                "type": "array",
                "items": {"type": "string"},
                "description": _MEDIA_LINKS_DESCRIPTION,
            },
        },
        "required": ["subheader", "question", "answer"],
    }


def _tool(name: str, description: str, list_field: str, list_description: str,
          question_description: str) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "input_schema": {
            "type": "object",
            "properties": {
                "title": {
                    "type": "string",
                    "description": "Title of the Wikipedia page; every question is about this page.",
                },
                "human_readable_name": {
                    "type": "string",
                    "description": "Human-readable page name.",
                },
                "last_updated": {
                    "type": "string",
                    "description": "Last update timestamp of the page.",
                },
                list_field: {
                    "type": "array",
                    "items": _item_schema(question_description),
                    "description": list_description,
                },
            },
            "required": ["title", "human_readable_name", "last_updated", list_field],
        },
    }


FIRST_PASS_TOOL_SCHEMA = _tool(
    FIRST_PASS_TOOL,
    (
        "Generate structured questions and answers from Wikipedia content, most "
        "interesting first. Use all of the page's information, including specifics "
        "outside the section a question comes from. Include image URLs that enrich an "
        "answer. Keep the case of page titles and cross-links. At least one question per "
        "section of the page."
    ),
    "faqs",
    "FAQs organised by subheader.",
    (
        "A question with something unique to share in its answer. At least one per "
        "section; sections dense with specifics deserve several."
    ),
)

SECOND_PASS_TOOL_SCHEMA = _tool(
    SECOND_PASS_TOOL,
    (
        "Generate additional questions and answers covering what the first pass missed, "
        "most interesting first. Same standards as the first pass. Do not reuse images "
        "the first pass already used. Keep the case of page titles and cross-links."
    ),
    "additional_faqs",
    "Additional FAQs organised by subheader that complement the existing ones.",
    "A new question not covered by the existing FAQs.",
)


FIRST_PASS_SYSTEM_PROMPT = (
    "You write FAQs from Wikipedia articles. Identify the key concepts and frame them as "
    "fascinating question and answer pairs, most interesting first. Be clear, relevant "
    "and engaging without jargon. Be thorough with specifics such as names, dates, "
    "locations, numbers and formulas, and expand on what most readers would want to "
    "know. Attach image URLs that go with an answer. Do NOT change the case of Wikipedia "
    "page titles or cross-links. Always answer by calling the "
    f"{FIRST_PASS_TOOL} tool."
)

SECOND_PASS_SYSTEM_PROMPT = (
    "You extend an existing FAQ for a Wikipedia article. Cover aspects the existing "
    "questions miss, to the same standard, and never repeat an existing question. "
    f"Always answer by calling the {SECOND_PASS_TOOL} tool."
)


def format_images(images: Iterable[str]) -> str:
    return "\n".join(f"[Image {index}]: {url}" for index, url in enumerate(images, start=1))


def build_first_pass_message(title: str, last_updated: str, content: str,
                             images: List[str]) -> str:
    message = (
        "Extract structured questions and answers with subheaders, cross-links and, "
        "where available, images from the following Wikipedia content:\n\n"
        f"Title: {title}\n"
        f"Last Updated: {last_updated}\n"
        f"Content:\n{content}\n"
    )
    if images:
        message += f"\nImages:\n{format_images(images)}\n"
    return message


def build_second_pass_message(title: str, content: str, existing: List[FaqItem],
                              used_images: List[str], available_images: List[str]) -> str:
    existing_lines = "\n".join(
        f"- {faq.question}\n  Subheader: {faq.subheader or 'General'}" for faq in existing
    )
    used_lines = "\n".join(f"- {url}" for url in used_images) or "(none)"
    available_lines = format_images(available_images) or "(none)"

    return (
        f"Title: {title}\n\n"
        "Existing questions (do not repeat these):\n"
        f"{existing_lines}\n\n"
        "Images already used (do not use these):\n"
        f"{used_lines}\n\n"
        "Images still available:\n"
        f"{available_lines}\n\n"
        f"Content:\n{content}\n\n"
        "Requirements:\n"
        "1. Generate entirely new questions that don't overlap with existing ones\n"
        "2. Focus on the most interesting uncovered aspects first\n"
        "3. Provide comprehensive, engaging answers\n"
        "4. Only use images that weren't used in the first pass\n"
        "5. Maintain the same high standards of clarity and relevance\n"
        "6. Group under appropriate subheaders\n"
        "7. Include relevant cross-links\n"
    )
