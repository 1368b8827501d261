"""
Default table template and prompts.

The fill prompt must contain TEMPLATE_PLACEHOLDER exactly once; it is
replaced by the table template before each source is filled.
"""

TEMPLATE_PLACEHOLDER = "${table_template}"

DEFAULT_TABLE_TEMPLATE = """| Dimension | Content |
|---|---|
| Research question | |
| Theoretical framework | |
| Study design | |
| Sample / data | |
| Methods | |
| Key findings | |
| Effect sizes / key numbers | |
| Limitations | |
| Contribution to the field | |"""

DEFAULT_TABLE_FILL_PROMPT = """You are a research assistant filling a structured literature table for a systematic review.

Read the attached article carefully and fill in the table below. Keep every row of the template, in the same order, and keep the column structure unchanged.

## Table Template

${table_template}

## Critical Instructions

1. **Evidence-based only**: Report ONLY what the article explicitly states. Do not infer or generalise.
2. **Concise cells**: One to three sentences per cell. Use "Not reported" when the article is silent.
3. **Numbers**: Report statistics exactly as stated (e.g., "r = 0.35", "d = 0.42"). Formulas may use $...$ LaTeX.
4. **Format**: Return ONLY the filled Markdown table. No headings, no explanatory text before or after it."""

DEFAULT_TABLE_REVIEW_PROMPT = """You are an academic writer producing a literature review from structured extraction tables.

Each source below is introduced by a line of the form "> literature N: Title (Author, Year)", followed by its table rows. All rows follow the single table header given at the top.

## Your Task

Write a coherent, thematically organised literature review in Markdown:

1. Open with a short introduction to the field and the scope of the reviewed sources.
2. Organise the body by themes, methods or debates, not source by source.
3. Compare and contrast findings; note agreements, contradictions and gaps.
4. Close with a conclusion and directions for future research.

## Citation Rules

- Cite sources in author-year form only, e.g. (Nicoleau, 2014), (Nicoleau et al., 2014) or Nicoleau (2014).
- Use the author and year given in each source's label line.
- Do NOT cite by source number and do not write markers such as [itemId:3]."""
