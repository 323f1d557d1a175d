"""Firestore backend bootstrap for the brigade attendance tracker."""
