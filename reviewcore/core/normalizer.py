"""
Identity Normalizer - Comparable keys for bibliographic records

Canonicalizes the identifying fields of a reference:
- DOI: lowercase, URL/scheme prefixes stripped, trimmed
- PMID: digits only
- Title: lowercase, accents folded, punctuation removed, British
  spellings mapped to American
- Authors: normalized surnames
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional
import re
import unicodedata

from ..models.domain import Reference


_DOI_PREFIXES = re.compile(
    r'^(?:doi:\s*|https?://(?:dx\.)?doi\.org/|(?:dx\.)?doi\.org/)',
    re.IGNORECASE
)

# Whole-word British -> American spellings common in clinical titles
_SPELLING_VARIANTS = {
    'behaviour': 'behavior',
    'behavioural': 'behavioral',
    'behaviours': 'behaviors',
    'randomised': 'randomized',
    'randomisation': 'randomization',
    'organisation': 'organization',
    'organisational': 'organizational',
    'paediatric': 'pediatric',
    'paediatrics': 'pediatrics',
    'anaesthesia': 'anesthesia',
    'anaesthetic': 'anesthetic',
    'haemorrhage': 'hemorrhage',
    'haematology': 'hematology',
    'oesophageal': 'esophageal',
    'oedema': 'edema',
    'oestrogen': 'estrogen',
    'foetal': 'fetal',
    'tumour': 'tumor',
    'tumours': 'tumors',
    'colour': 'color',
    'centre': 'center',
    'centres': 'centers',
    'programme': 'program',
    'programmes': 'programs',
    'analyse': 'analyze',
    'analysed': 'analyzed',
    'utilisation': 'utilization',
    'hospitalisation': 'hospitalization',
    'characterisation': 'characterization',
}


def normalize_doi(doi: Optional[str]) -> str:
    """Return the canonical DOI, or '' when absent"""
    if not doi:
        return ""

    text = str(doi).strip().lower()
    # Prefixes may be stacked, e.g. "doi: https://doi.org/10.1/x"
    previous = None
    while previous != text:
        previous = text
        text = _DOI_PREFIXES.sub('', text).strip()

    return text


def normalize_pmid(pmid) -> str:
    """Return the PMID digits, or '' when absent"""
    if pmid is None:
        return ""
    return "".join(ch for ch in str(pmid) if ch.isdigit())


def fold_accents(text: str) -> str:
    decomposed = unicodedata.normalize('NFKD', text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_title(title: Optional[str]) -> str:
    """
    Normalize title for comparison

    - Lowercase, accents folded
    - Punctuation replaced by spaces, whitespace collapsed
    - British spellings mapped to American
    """
    if not title:
        return ""

    text = fold_accents(str(title)).lower()
    text = re.sub(r'[^\w\s]|_', ' ', text)
    words = [_SPELLING_VARIANTS.get(word, word) for word in text.split()]
    return " ".join(words)


def normalize_surname(author: Optional[str]) -> str:
    """
    Extract a normalized surname from an author string

    Handles "Smith, John", "Smith J" and "John Smith" forms.
    """
    if not author:
        return ""

    text = fold_accents(str(author)).strip()
    if not text:
        return ""

    if ',' in text:
        candidate = text.split(',')[0]
    else:
        tokens = text.split()
        # "Smith J" / "Smith JA": trailing initials follow the surname
        if len(tokens) > 1 and _is_initials(tokens[-1]):
            candidate = tokens[0]
        else:
            candidate = tokens[-1]

    # Letters of any script survive; digits and punctuation do not
    return re.sub(r'[\W\d_]', '', candidate.casefold())


def _is_initials(token: str) -> bool:
    stripped = token.replace('.', '')
    return len(stripped) == 1 or (stripped.isupper() and len(stripped) <= 3)


def normalize_surnames(authors: Iterable[str]) -> FrozenSet[str]:
    surnames = (normalize_surname(a) for a in authors or ())
    return frozenset(s for s in surnames if s)


@dataclass(frozen=True)
class IdentityKey:
    """Normalized identifying fields of one reference"""
    reference_id: int
    doi: str
    pmid: str
    title: str
    surnames: FrozenSet[str]
    first_initial: str
    year: Optional[int]
    has_authors: bool = False


def build_identity_key(reference: Reference) -> IdentityKey:
    """Normalize every identifying field of a reference"""
    first_surname = normalize_surname(reference.authors[0]) if reference.authors else ""
    return IdentityKey(
        reference_id=reference.id,
        doi=normalize_doi(reference.doi),
        pmid=normalize_pmid(reference.pmid),
        title=normalize_title(reference.title),
        surnames=normalize_surnames(reference.authors),
        first_initial=first_surname[:1],
        year=reference.year,
        has_authors=any(str(a).strip() for a in reference.authors)
    )
