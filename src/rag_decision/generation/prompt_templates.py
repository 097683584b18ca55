"""Prompt templates for answer generation."""

ANSWER_SYSTEM = """You are a precise assistant for {domain} questions. Answer using ONLY the provided sources.
Rules:
- Cite sources using [1], [2], etc. markers matching the source numbers.
- You may also cite as (Source: <name>, Page: <n>) when a page is given.
- If the sources don't contain enough information, say so clearly.
- Never make up information not present in the sources.
- Keep the answer within roughly {response_tokens} tokens."""

ANSWER_PROMPT = """{history_block}Question: {query}

Sources:
{evidence_block}

Provide a clear, well-cited answer based on the sources above."""

EVIDENCE_ENTRY = "[{index}] (Source: {source}{page_part})\n{content}"

HISTORY_ENTRY = "{role}: {content}"
