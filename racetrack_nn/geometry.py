"""2D geometry for sensing and collision.

Segments are stored as rows of an (M, 4) array ``[ax, ay, bx, by]`` so a
whole fan of rays can be tested against the track in one broadcast.
"""

import math

import numpy as np

EPS = 1e-9


def normalize_angle(angle):
    return (angle + math.pi) % (2 * math.pi) - math.pi


def segment_intersection(a, b, c, d):
    """Intersection point of segments a-b and c-d, or None."""
    ax, ay = a
    bx, by = b
    cx, cy = c
    dx, dy = d
    t_top = (dx - cx) * (ay - cy) - (dy - cy) * (ax - cx)
    u_top = (cy - ay) * (ax - bx) - (cx - ax) * (ay - by)
    bottom = (dy - cy) * (bx - ax) - (dx - cx) * (by - ay)
    if abs(bottom) < EPS:
        return None
    t = t_top / bottom
    u = u_top / bottom
    if 0 <= t <= 1 and 0 <= u <= 1:
        return (ax + t * (bx - ax), ay + t * (by - ay))
    return None


def as_segment_array(segments):
    seg = np.asarray(segments, dtype=np.float64)
    if seg.size == 0:
        return np.empty((0, 4), dtype=np.float64)
    return seg.reshape(-1, 4)


def cast_rays(origin, angles, max_length, segments):
    """
    Cast one ray per angle from origin against every segment.
    Returns: (N,) distances to the nearest hit, max_length where nothing is hit
    """
    ox, oy = origin
    angles = np.atleast_1d(np.asarray(angles, dtype=np.float64))
    seg = as_segment_array(segments)
    if len(seg) == 0:
        return np.full(len(angles), float(max_length))

    cos_a = np.cos(angles)                             # (N,)
    sin_a = np.sin(angles)                             # (N,)

    sx = seg[:, 2] - seg[:, 0]                         # (M,) segment dx
    sy = seg[:, 3] - seg[:, 1]                         # (M,) segment dy
    dox = seg[:, 0] - ox                               # (M,) origin-to-seg x
    doy = seg[:, 1] - oy                               # (M,) origin-to-seg y

    # (N, M) via broadcasting
    denom = cos_a[:, None] * sy[None, :] - sin_a[:, None] * sx[None, :]
    t_num = dox * sy - doy * sx                        # (M,) ray-independent
    u_num = dox[None, :] * sin_a[:, None] - doy[None, :] * cos_a[:, None]

    abs_denom = np.abs(denom)
    safe_denom = np.where(abs_denom > EPS, denom, 1.0)
    t = t_num[None, :] / safe_denom                    # distance along the ray
    u = u_num / safe_denom                             # position along the segment

    valid = (abs_denom > EPS) & (t >= 0) & (t <= max_length) & (u >= 0) & (u <= 1)
    t = np.where(valid, t, float(max_length))
    return np.min(t, axis=1)


def cast_ray(origin, angle, max_length, segments):
    return float(cast_rays(origin, [angle], max_length, segments)[0])


def point_in_polygon(point, vertices):
    """Even-odd ray casting test against a closed vertex list."""
    x, y = point
    poly = np.asarray(vertices, dtype=np.float64)
    if len(poly) < 3:
        return False
    xi, yi = poly[:, 0], poly[:, 1]
    xj, yj = np.roll(xi, 1), np.roll(yi, 1)
    straddles = (yi > y) != (yj > y)
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
    crossings = straddles & (x < x_cross)
    return bool(np.count_nonzero(crossings) % 2)


def polygon_segments(vertices):
    """Closed polygon -> (M, 4) segment array, last vertex joined to the first."""
    poly = np.asarray(vertices, dtype=np.float64)
    nxt = np.roll(poly, -1, axis=0)
    return np.hstack([poly, nxt])


def cubic_bezier(p0, p1, p2, p3, steps):
    """Tessellate a cubic Bezier into ``steps`` line segments (steps + 1 points)."""
    t = np.linspace(0.0, 1.0, steps + 1)[:, None]
    p0, p1, p2, p3 = (np.asarray(p, dtype=np.float64) for p in (p0, p1, p2, p3))
    mt = 1.0 - t
    return (mt ** 3) * p0 + 3 * (mt ** 2) * t * p1 + 3 * mt * (t ** 2) * p2 + (t ** 3) * p3


class RoundedRect:
    """Axis-aligned rectangle with quarter-circle corners."""

    def __init__(self, x, y, width, height, radius=0.0):
        self.x = float(x)
        self.y = float(y)
        self.width = float(width)
        self.height = float(height)
        self.radius = max(0.0, min(float(radius), self.width / 2, self.height / 2))

    def __repr__(self):
        return (f"RoundedRect(x={self.x}, y={self.y}, width={self.width}, "
                f"height={self.height}, radius={self.radius})")

    @classmethod
    def from_dict(cls, data):
        return cls(data["x"], data["y"], data["width"], data["height"], data.get("radius", 0.0))

    @property
    def is_degenerate(self):
        return self.width <= 0 or self.height <= 0

    def _corner_centres(self):
        r = self.radius
        left, top = self.x + r, self.y + r
        right, bottom = self.x + self.width - r, self.y + self.height - r
        return left, top, right, bottom

    def contains(self, point):
        px, py = point
        if not (self.x <= px <= self.x + self.width and self.y <= py <= self.y + self.height):
            return False
        r = self.radius
        if r == 0:
            return True
        left, top, right, bottom = self._corner_centres()
        cx = left if px < left else right if px > right else None
        cy = top if py < top else bottom if py > bottom else None
        if cx is None or cy is None:
            return True
        return (px - cx) ** 2 + (py - cy) ** 2 <= r * r

    def outline(self, steps=8):
        """Closed vertex list, clockwise in screen coordinates."""
        left, top, right, bottom = self._corner_centres()
        r = self.radius
        if r == 0:
            return [(self.x, self.y), (self.x + self.width, self.y),
                    (self.x + self.width, self.y + self.height), (self.x, self.y + self.height)]
        corners = [
            (right, top, -math.pi / 2),
            (right, bottom, 0.0),
            (left, bottom, math.pi / 2),
            (left, top, math.pi),
        ]
        points = []
        for cx, cy, start in corners:
            for i in range(steps + 1):
                a = start + (math.pi / 2) * i / steps
                points.append((cx + r * math.cos(a), cy + r * math.sin(a)))
        return points
