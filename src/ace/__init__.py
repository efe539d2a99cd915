"""ACE: bibliographic metadata extraction and verification for arXiv papers.

Cases (one per paper) are grouped from input files, drained through a
bounded-concurrency scheduler that calls a generative model for
extraction, cross-checked by a deterministic verification engine and
finally reviewed by an operator before XML export.
"""

__version__ = "0.1.0"
