"""Impact assessment: process graph, solver, characterization, phases, ranking."""
