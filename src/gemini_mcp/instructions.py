"""System instruction assembly for Gemini chat sessions."""

DEFAULT_PERSONA = """You are an expert software engineer assistant powered by Gemini 3 Pro Preview.
You help with code review, analysis, planning, and problem-solving.
Provide clear, concise, and actionable responses.
When reviewing code or plans, be thorough but practical."""

SANDBOX_DESCRIPTIONS = {
    "read-only": "You are in read-only mode. You can analyze and review but cannot make changes.",
    "workspace-write": "You can read and write within the workspace directory.",
    "danger-full-access": "You have full access to read and write files.",
}

SANDBOX_MODES = tuple(SANDBOX_DESCRIPTIONS)


def compose_system_instruction(
    base_instructions: str | None = None,
    cwd: str | None = None,
    sandbox: str | None = None,
    developer_instructions: str | None = None,
) -> str:
    """Build the system instruction sent with every chat turn.

    Blocks are emitted in a fixed order: base (or default persona),
    working directory, access level, developer instructions. Sandbox
    values outside ``SANDBOX_MODES`` are ignored.
    """
    parts = [base_instructions if base_instructions else DEFAULT_PERSONA]

    if cwd:
        parts.append(f"\nWorking directory: {cwd}")

    if sandbox:
        description = SANDBOX_DESCRIPTIONS.get(sandbox)
        if description:
            parts.append(f"\nAccess level: {description}")

    if developer_instructions:
        parts.append(f"\nDeveloper Instructions:\n{developer_instructions}")

    return "\n".join(parts)
