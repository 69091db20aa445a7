"""Bank proxy with transfer hooks and stake shares, and the ampere stake index."""