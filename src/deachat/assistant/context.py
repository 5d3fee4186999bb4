"""Assemble the system instruction sent with every chat request.

The browser keeps three toggleable context pills (disease type, comparison
label, gene selection). Whatever is switched on is rendered into plain-text
sections after the role preamble. Older clients only send a flat list of
selected genes; that list is used when no pill is active.
"""

from __future__ import annotations

import math
import os
from collections.abc import Sequence

from deachat.assistant.models import ActiveContext, GeneCategory, SelectedGene


MAX_CONTEXT_GENES = 20
MAX_LEGACY_GENES = 10

ROLE_PREAMBLE = (
    "You are a bioinformatics assistant specialized in analyzing differential expression "
    "analysis (DEA) results. You have access to STRING database tools for protein-protein "
    "interaction analysis."
)


def _prompt_extra() -> str | None:
    extra = (os.getenv("DEACHAT_ASSISTANT_SYSTEM_PROMPT_EXTRA") or "").strip()
    return extra or None


def format_fixed(value: float | None, digits: int = 2) -> str:
    if value is None:
        return "n/a"
    if not math.isfinite(value):
        return _non_finite(value)
    return f"{value:.{digits}f}"


def format_exponential(value: float | None, digits: int = 2) -> str:
    """Format like JavaScript's ``toExponential``: ``1.23e-5``, ``4.00e+0``."""

    if value is None:
        return "n/a"
    if not math.isfinite(value):
        return _non_finite(value)
    mantissa, exponent = f"{value:.{digits}e}".split("e")
    return f"{mantissa}e{int(exponent):+d}"


def _non_finite(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    return "Infinity" if value > 0 else "-Infinity"


def _gene_line(gene: SelectedGene) -> str:
    return (
        f"- {gene.gene}: log2FC={format_fixed(gene.log2FC)}, "
        f"padj={format_exponential(gene.padj)}, category={gene.category.value}"
    )


def _selection_block(genes: Sequence[SelectedGene]) -> str:
    lines = [f"SELECTED GENES FROM VOLCANO PLOT ({len(genes)} genes):"]
    lines.extend(_gene_line(gene) for gene in genes[:MAX_CONTEXT_GENES])
    if len(genes) > MAX_CONTEXT_GENES:
        lines.append(f"... and {len(genes) - MAX_CONTEXT_GENES} more genes")
    block = "\n".join(lines)

    counts = {category: 0 for category in GeneCategory}
    for gene in genes:
        counts[gene.category] += 1
    summary = (
        f"SUMMARY: {counts[GeneCategory.upregulated]} upregulated, "
        f"{counts[GeneCategory.downregulated]} downregulated, "
        f"{counts[GeneCategory.not_significant]} not significant"
    )
    return block + "\n\n" + summary


def _context_sections(context: ActiveContext) -> list[str]:
    sections: list[str] = []
    if context.has_disease_type:
        sections.append(f"DISEASE TYPE: {context.disease_type}")
    if context.has_comparison_groups:
        sections.append(f"COMPARISON GROUPS: {context.comparison_groups}")
    if context.has_selection:
        sections.append(_selection_block(context.selection or []))
    return sections


def _legacy_sentence(genes: Sequence[SelectedGene]) -> str:
    names = ", ".join(gene.gene for gene in genes[:MAX_LEGACY_GENES])
    more = "..." if len(genes) > MAX_LEGACY_GENES else ""
    return (
        f"The user has currently selected {len(genes)} genes from the volcano plot: "
        f"{names}{more}"
    )


def build_system_instruction(
    context: ActiveContext | None,
    legacy_selection: Sequence[SelectedGene] | None = None,
) -> str:
    """Return the system instruction for one chat request.

    Structured ``context`` with any populated field supersedes
    ``legacy_selection`` entirely. With neither, the preamble is returned
    alone.
    """

    sections = [ROLE_PREAMBLE]
    extra = _prompt_extra()
    if extra:
        sections.append(extra)

    if context is not None and not context.is_empty():
        sections.extend(_context_sections(context))
    elif legacy_selection:
        sections.append(_legacy_sentence(legacy_selection))

    return "\n\n".join(sections)


__all__ = [
    "MAX_CONTEXT_GENES",
    "MAX_LEGACY_GENES",
    "ROLE_PREAMBLE",
    "build_system_instruction",
    "format_exponential",
    "format_fixed",
]
