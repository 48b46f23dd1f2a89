"""Cross-cutting helpers shared by rolemate features."""
