"""HTTP API for the balloon tracker."""
