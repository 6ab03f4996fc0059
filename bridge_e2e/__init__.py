"""
bridge-e2e

End-to-end verification of an L1/L2 rollup bridge deployment: funds a
disposable identity, bridges ETH and a freshly deployed token in both
directions and claims the withdrawals back on L1.
"""

__version__ = "0.2.0"
