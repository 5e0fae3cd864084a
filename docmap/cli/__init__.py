# =============================================================================
# docmap/cli/__init__.py — CLI Module Overview
# =============================================================================
#
# Command-line access to the docmap core without any server:
#
#   docmap process FILE...   submit documents, wait for their jobs and print
#                            the aggregated themes, quotes, insights and
#                            keywords (text or --json)
#   docmap graph DOC_ID...   print the systems map for processed documents
#   docmap providers         show LLM provider availability and fallback order
#
# All commands use argparse.  Log output goes to stderr so stdout carries
# only results.
# =============================================================================

"""Command-line interface for docmap.

Run as ``docmap <command>`` (console script) or ``python -m docmap.cli``.
"""
