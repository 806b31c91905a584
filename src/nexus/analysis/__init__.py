"""
Risk analysis of resolved companies.
"""

from nexus.analysis.risk import RiskAnalyzer, RuleBasedRiskAnalyzer

__all__ = ["RiskAnalyzer", "RuleBasedRiskAnalyzer"]
