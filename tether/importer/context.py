"""Context files built from the memory data in exports.

Claude exports carry a global memory and per-project memories and
instructions; ChatGPT exports carry the user's custom instructions on
individual messages. Each becomes a markdown file under ``contexts/``.
"""

import re

from tether.importer.models import ClaudeMemory, ClaudeProject

GENERAL_CONTEXT = "general-context"
CHATGPT_CONTEXT = "chatgpt-context"

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    slug = _SLUG_RE.sub("-", name.lower()).strip("-")
    return slug or "project"


def claude_context_files(
    memories: list[ClaudeMemory], projects: list[ClaudeProject]
) -> list[tuple[str, str]]:
    """(file name, content) pairs for a Claude export, general context first.

    Projects without memory or instructions produce no file. Two projects
    with the same slug keep the first.
    """
    memory = memories[0] if memories else ClaudeMemory()
    files: list[tuple[str, str]] = []

    if memory.conversations_memory and memory.conversations_memory.strip():
        files.append((
            GENERAL_CONTEXT,
            "# General Context\n\n"
            "_Imported from Claude memory._\n\n"
            f"{memory.conversations_memory.strip()}\n",
        ))

    seen: set[str] = {GENERAL_CONTEXT}
    for project in projects:
        project_memory = memory.project_memories.get(project.uuid or "", "").strip()
        instructions = (project.prompt_template or "").strip()
        if not project.name or not (project_memory or instructions):
            continue
        slug = slugify(project.name)
        if slug in seen:
            continue
        seen.add(slug)

        sections = [f"# {project.name}\n"]
        if project.description and project.description.strip():
            sections.append(f"{project.description.strip()}\n")
        if project_memory:
            sections.append(f"## Memory\n\n{project_memory}\n")
        if instructions:
            sections.append(f"## Instructions\n\n{instructions}\n")
        files.append((slug, "\n".join(sections)))

    return files


def chatgpt_context_file(about_user: str, about_model: str | None) -> tuple[str, str]:
    content = f"# ChatGPT Context\n\n{about_user.strip()}\n"
    if about_model:
        content += f"\nCommunication preferences: {about_model.strip()}\n"
    return CHATGPT_CONTEXT, content
