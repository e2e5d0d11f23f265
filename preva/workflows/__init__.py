"""
Workflows: the operations the HTTP layer exposes.

Every public function takes the acting user explicitly and returns a
`preva.errors.Result` rather than raising.
"""
