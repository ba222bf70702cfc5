"""Lexical citation detection for brands and competitors."""
