from signage_player.schemas.playback import ResolvedContent


def completion_plan(resolved: ResolvedContent) -> dict:
    content = resolved.content
    duration = max(int(content.duration or 0), 0)
    if content.type == "video":
        return {"mode": "native", "revision": resolved.revision}
    if content.type == "slideshow":
        slides = content.slides
        if slides:
            return {
                "mode": "slides",
                "revision": resolved.revision,
                "after_sec": duration,
                "slide_count": len(slides),
                "slide_interval_sec": duration / len(slides),
            }
    # image, text and slideshows without slides complete on a single timer.
    return {"mode": "timer", "revision": resolved.revision, "after_sec": duration}
