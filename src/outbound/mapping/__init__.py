"""Record mapping engine -- dotted paths, field transforms, after-transforms."""
