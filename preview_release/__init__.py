"""Preview releases for pnpm monorepos: publish what a pull request changed."""
