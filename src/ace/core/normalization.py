"""Text normalization utilities for title and author comparison."""

import re
import unicodedata
from typing import Iterable, List, Optional

# Math-mode delimiters that only switch rendering style.
MATH_DELIMITERS = ("$$", "$", r"\(", r"\)", r"\[", r"\]")

# Commands that wrap a fragment purely for styling: \mathbf{X} -> X.
_STYLE_COMMAND = re.compile(
    r"\\(?:math(?:bf|it|rm|sf|tt|cal|bb|frak|scr)|text(?:bf|it|rm|sf|tt|normal|sc)?|emph|bm|boldsymbol|operatorname)\s*\{([^{}]*)\}"
)

# Symbol commands with a plain-text rendering.
LATEX_SYMBOLS = {
    "times": "x",
    "cdot": "·",
    "pm": "±",
    "mp": "∓",
    "leq": "≤",
    "le": "≤",
    "geq": "≥",
    "ge": "≥",
    "neq": "≠",
    "ne": "≠",
    "approx": "≈",
    "sim": "~",
    "infty": "∞",
    "to": "→",
    "rightarrow": "→",
    "leftarrow": "←",
    "alpha": "α",
    "beta": "β",
    "gamma": "γ",
    "delta": "δ",
    "epsilon": "ε",
    "varepsilon": "ε",
    "theta": "θ",
    "kappa": "κ",
    "lambda": "λ",
    "mu": "μ",
    "nu": "ν",
    "pi": "π",
    "rho": "ρ",
    "sigma": "σ",
    "tau": "τ",
    "phi": "φ",
    "varphi": "φ",
    "chi": "χ",
    "psi": "ψ",
    "omega": "ω",
    "Gamma": "Γ",
    "Delta": "Δ",
    "Theta": "Θ",
    "Lambda": "Λ",
    "Sigma": "Σ",
    "Phi": "Φ",
    "Psi": "Ψ",
    "Omega": "Ω",
}
_SYMBOL_COMMAND = re.compile(r"\\([A-Za-z]+)")
_SPACING_COMMAND = re.compile(r"\\[,;:! ]")


def has_math_delimiters(text: Optional[str]) -> bool:
    """True if the text carries LaTeX math or styling markup."""
    if not text:
        return False
    if any(delim in text for delim in MATH_DELIMITERS):
        return True
    return bool(_STYLE_COMMAND.search(text))


def strip_math_markup(text: str) -> str:
    """Remove LaTeX delimiters and styling commands, keeping their content."""
    previous = None
    while previous != text:
        previous = text
        text = _STYLE_COMMAND.sub(r"\1", text)
    text = _SPACING_COMMAND.sub(" ", text)
    text = _SYMBOL_COMMAND.sub(lambda m: LATEX_SYMBOLS.get(m.group(1), m.group(1)), text)
    for delim in MATH_DELIMITERS:
        text = text.replace(delim, "")
    return text.replace("{", "").replace("}", "")


def normalize_title(title: Optional[str]) -> str:
    """Normalize a title for equivalence checks.

    Strips math delimiters and styling commands, applies Unicode NFKC,
    collapses whitespace and case-folds. Punctuation is kept: it is part
    of the title's content.
    """
    if not title:
        return ""
    text = strip_math_markup(title)
    text = unicodedata.normalize("NFKC", text)
    text = " ".join(text.split())
    return text.casefold()


def titles_equivalent(first: Optional[str], second: Optional[str]) -> bool:
    """True when both titles are present and equal after normalization."""
    if not first or not second:
        return False
    return normalize_title(first) == normalize_title(second)


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace; return None for blank input."""
    if not text:
        return None
    cleaned = " ".join(text.split())
    return cleaned or None


def normalize_author_names(names: Iterable[Optional[str]]) -> List[str]:
    """Drop blank entries and collapse whitespace in author names."""
    result: List[str] = []
    for name in names:
        cleaned = clean_text(name)
        if cleaned:
            result.append(cleaned)
    return result
