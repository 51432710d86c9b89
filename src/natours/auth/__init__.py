"""Authentication and authorization.

Learn: Users log in with email/password and receive a JWT identity token,
sent back either as `Authorization: Bearer <token>` or in the httpOnly
`jwt` cookie. Each request resolves the token to a live user
(dependencies.get_current_user), and restrict_to() gates routes by role.
"""
