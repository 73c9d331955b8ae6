"""Gene libraries: named rule sets and rule record parsing."""

from .genes import GeneLibrary, parse_rule_record, parse_rule_set

__all__ = ['GeneLibrary', 'parse_rule_record', 'parse_rule_set']
