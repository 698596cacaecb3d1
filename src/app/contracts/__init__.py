"""Contract module -- agreement template, signing state machine and persistence.

Provides the ContractModel, Pydantic schemas, the pure template renderer,
status rules, the row-locking ContractRepository and the ContractEngine.
"""
