"""Scheduled contract calls ("thoughts"): storage, execution, messages and queries."""