"""
Judge Prompts

Prompt templates for every SemanticJudge call made during triage.
Boolean prompts expect a bare 'true'/'false'; score prompts a bare number.
"""

SHORT_QUESTION_PROMPT = """Analyze if this is a question or request for information, even if informal.
Context: "{text}"
Respond with only 'true' or 'false'."""

LONG_QUESTION_PROMPT = """Analyze if this message is a question or request for information, even if:
- It's informally written
- Doesn't use proper grammar
- Doesn't have question marks
- Question words are in unusual positions

Message: "{text}"
Respond with only 'true' or 'false'."""

EQUIVALENCE_PROMPT = """Compare if these two questions are asking about the same thing.
Consider them similar if they're seeking the same information, even if phrased differently.
Rate from 0 to 1, where:
1 = asking about exactly the same thing
0 = completely different topics

Question 1: "{new_question}"
Question 2: "{existing_question}"

Examples of similar questions (score 0.9+):
- "what is an array" ~ "can someone explain arrays"
- "how to create array" ~ "help me make an array"
- "need help with arrays" ~ "confused about arrays how do they work"

Examples of unrelated questions (score near 0):
- "what is an array" vs "how do I deploy to production"

Return only a number between 0 and 1."""

RELEVANT_ANSWER_PROMPT = """Is this message a relevant answer to the question?
Question: {question}
Potential Answer: {answer}
Respond with only 'true' or 'false'."""

KEY_TERMS_PROMPT = """Extract and return only the key technical terms, concepts, and specific details from this text, ignoring common words and formatting.
Return them as a single comma-separated line.

Text: {text}"""


def short_question_prompt(text: str) -> str:
    return SHORT_QUESTION_PROMPT.format(text=text)


def long_question_prompt(text: str) -> str:
    return LONG_QUESTION_PROMPT.format(text=text)


def equivalence_prompt(new_question: str, existing_question: str) -> str:
    return EQUIVALENCE_PROMPT.format(new_question=new_question, existing_question=existing_question)


def relevant_answer_prompt(question: str, answer: str) -> str:
    return RELEVANT_ANSWER_PROMPT.format(question=question, answer=answer)


def key_terms_prompt(text: str) -> str:
    return KEY_TERMS_PROMPT.format(text=text)
