"""Ledger access: contract ABIs, the web3 network client, and the read layer."""
