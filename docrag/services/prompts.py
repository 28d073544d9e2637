"""RAG prompt construction and answer post-processing."""

import re
from dataclasses import dataclass
from typing import List, Optional
from xml.sax.saxutils import escape

from docrag.models.chat import Citation

SYSTEM_PROMPT_RAG_CITATIONS = """You are a helpful assistant that answers questions about the user's uploaded documents.

<rules>
1. Base answers ONLY on the content inside the <documents> tags.
2. ALWAYS cite sources using the format [Source index: filename], for example [Source 1: manual.pdf].
3. Use the "index" attribute of the <document> tag as the index.
4. Several sources can be cited: [Source 1: a.pdf] [Source 2: b.pdf]
5. If no document contains the answer, say that the uploaded documents do not cover the question.
6. NEVER fabricate information.
7. Use Markdown (headers, bold, lists) and put citations on their own line.
</rules>

<output>
- Answer in the language of the question.
- Cite every claim.
</output>"""

SYSTEM_PROMPT_RAG_THINKING = """You are a helpful assistant that analyses the user's uploaded documents methodically.

<rules>
1. First analyse the context inside <thinking> tags.
2. Identify which documents contain relevant information.
3. Give the final answer inside <answer> tags.
4. Cite sources in <answer> using the format [Source index: filename].
5. If no document contains the answer, say so inside <answer>.
6. NEVER fabricate information.
7. Use Markdown inside <answer> and put citations on their own line.
</rules>

<format>
<thinking>
[Which documents are relevant and why]
</thinking>

<answer>
[Final answer with citations like [Source 1: file.pdf]]
</answer>
</format>"""

XML_ATTR_ENTITIES = {'"': "&quot;", "'": "&apos;"}

ANSWER_OPEN = "<answer>"
ANSWER_CLOSE = "</answer>"

CITATION_PATTERN = re.compile(r"\[Source\s*(\d*)\s*:\s*([^\]]+)\]", re.IGNORECASE)
INDEXED_PART_PATTERN = re.compile(r"^(\d+)[.\s]+(.*)")
PART_SEPARATORS = re.compile(r"[,、，]")


@dataclass
class PromptPair:
    """System prompt plus user prompt for one generation call."""

    system_prompt: str
    user_prompt: str


@dataclass
class CitationReference:
    """A citation marker found in an answer."""

    text: str
    index: Optional[int] = None


def format_documents_xml(documents: List[Citation]) -> str:
    """Render context documents as an XML block."""
    if not documents:
        return "<documents>\n  <empty>No documents available.</empty>\n</documents>"

    docs = "\n".join(
        f'  <document index="{i}" source="{escape(doc.file_name, XML_ATTR_ENTITIES)}" '
        f'score="{doc.score:.2f}">\n{escape(doc.text)}\n  </document>'
        for i, doc in enumerate(documents, start=1)
    )
    return f"<documents>\n{docs}\n</documents>"


def build_rag_prompt(documents: List[Citation], query: str, enable_thinking: bool = False) -> PromptPair:
    """
    Build the prompt pair for a query.

    Args:
        documents: Deduplicated context documents.
        query: User question.
        enable_thinking: Ask for a <thinking> block before the <answer>.

    Returns:
        System and user prompt.
    """
    context = format_documents_xml(documents)
    question = f"<question>\n{escape(query)}\n</question>"

    if enable_thinking:
        return PromptPair(
            system_prompt=SYSTEM_PROMPT_RAG_THINKING,
            user_prompt=f"{context}\n\n{question}\n\nAnalyze and answer using <thinking> and <answer> format.",
        )
    return PromptPair(
        system_prompt=SYSTEM_PROMPT_RAG_CITATIONS,
        user_prompt=f"{context}\n\n{question}\n\nAnswer with citations in [Source index: filename] format.",
    )


def extract_answer_from_stream(full_text: str) -> str:
    """
    Return the visible part of a thinking-mode buffer.

    Everything between <answer> and </answer>, everything after <answer>
    while the block is still open, or an empty string before it starts.
    """
    start = full_text.find(ANSWER_OPEN)
    if start == -1:
        return ""
    content_start = start + len(ANSWER_OPEN)
    end = full_text.find(ANSWER_CLOSE, content_start)
    return full_text[content_start:] if end == -1 else full_text[content_start:end]


def extract_cited_references(text: str) -> List[CitationReference]:
    """
    Find citation markers in an answer.

    Understands ``[Source 1: a.pdf]``, ``[Source: 1. a.pdf]`` and
    ``[Source: a.pdf]``; one marker may list several comma-separated parts.
    """
    references: List[CitationReference] = []
    for match in CITATION_PATTERN.finditer(text):
        tag_index = int(match.group(1)) if match.group(1) else None
        for part in PART_SEPARATORS.split(match.group(2)):
            part = part.strip()
            if not part:
                continue
            if tag_index is not None:
                references.append(CitationReference(text=part, index=tag_index))
                continue
            indexed = INDEXED_PART_PATTERN.match(part)
            if indexed:
                references.append(
                    CitationReference(text=indexed.group(2).strip(), index=int(indexed.group(1)))
                )
            else:
                references.append(CitationReference(text=part))
    return references


def select_cited_citations(citations: List[Citation], answer: str) -> List[Citation]:
    """
    Keep the citations the answer refers to.

    A citation is kept when its file name appears in a marker. Answers
    without any marker keep every citation.
    """
    references = extract_cited_references(answer)
    if not references:
        return list(citations)

    cited_names = {ref.text for ref in references}
    return [citation for citation in citations if citation.file_name in cited_names]
