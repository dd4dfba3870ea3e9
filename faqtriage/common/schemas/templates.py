"""
Notification Templates

User-facing texts posted by the triage pipeline. Raw error details never go
through here; operators read them in the logs.
"""

NEW_THREAD_NOTICE = "New FAQ thread created! Awaiting answers..."

REDIRECT_TEMPLATE = "Similar question was already asked! Check this thread: {link}"

ANSWER_NOTICE_TEMPLATE = "Potential answer from {author}:\n{content}"

QUESTION_HEADER_TEMPLATE = "**Original question from {author}:**\n{content}"

APOLOGY_NOTICE = "Sorry, I couldn't process that message right now."

THREAD_NAME_LIMIT = 50


def render_thread_name(content: str, limit: int = THREAD_NAME_LIMIT) -> str:
    """Short thread title taken from the start of the question"""
    text = " ".join(content.split())
    if len(text) <= limit:
        return f"FAQ: {text}"
    return f"FAQ: {text[:limit]}..."


def render_redirect(link: str) -> str:
    return REDIRECT_TEMPLATE.format(link=link)


def render_question_header(author_mention: str, content: str) -> str:
    return QUESTION_HEADER_TEMPLATE.format(author=author_mention, content=content)


def render_answer_notice(author_mention: str, content: str) -> str:
    return ANSWER_NOTICE_TEMPLATE.format(author=author_mention, content=content)


def preview(text: str, limit: int) -> str:
    """Truncate for listings, marking the cut with an ellipsis"""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
