# Angkor Compliance Access Control - Demo Scenarios
# Sample tenants and walkthroughs of the evaluation stages

from .demo_data import load_demo_data
from .scenario_runner import run_scenarios

__all__ = ['load_demo_data', 'run_scenarios']
