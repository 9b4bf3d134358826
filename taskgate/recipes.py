"""Built-in example workflows."""

from .graph import Workflow

# (name, minutes of work, depends_on)
LASAGNE_STEPS = [
    ("Cut onions", 3, []),
    ("Mince meat", 5, []),
    ("Slice aubergines", 4, []),
    ("Make sauce", 7, ["Cut onions", "Mince meat"]),
    ("Finish bechamel", 6, []),
    ("Layout the layers", 8, ["Slice aubergines", "Make sauce"]),
    ("Put bechamel and cheese", 4, ["Finish bechamel", "Layout the layers"]),
    ("Turn on oven", 2, []),
    ("Cook", 10, ["Put bechamel and cheese", "Turn on oven"]),
]


def lasagne(time_scale: float = 1.0) -> Workflow:
    """Nine-step lasagne recipe; each step sleeps ``duration * time_scale`` seconds."""
    wf = Workflow("lasagne", description="Multi-threaded cook")
    for name, duration, depends_on in LASAGNE_STEPS:
        wf.add_sleep(name, duration * time_scale, depends_on=depends_on)
    return wf
