"""Risk provider implementations"""
from .demo import DemoRiskProvider
from .http import HttpRiskProvider
from .factory import RiskProviderFactory, register_providers_from_config
