"""Item Ledger: the last resolved items of each ListSource."""
