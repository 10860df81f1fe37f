"""Population-weighted IMD 2019 scores for GP practices and PCNs."""
