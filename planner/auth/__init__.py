"""Xano-backed login, logout and session guards."""
