"""pygame front-end. Reads snapshots only; never touches simulation state."""

import colorsys
import logging
import math
import os

import pygame

log = logging.getLogger(__name__)

WIDTH, HEIGHT = 1000, 600
TARGET_FPS = 60
MAX_SIM_SPEED = 50

BACKGROUND = (25, 30, 38)
TRACK_FILL = (50, 50, 55)
BOUNDARY = (200, 200, 200)
CHECKPOINT = (90, 90, 100)
NEXT_CHECKPOINT = (0, 255, 200)
SENSOR = (255, 220, 0)


def hue_to_rgb(hue, saturation=0.8, lightness=0.6):
    r, g, b = colorsys.hls_to_rgb((hue % 360.0) / 360.0, lightness, saturation)
    return int(r * 255), int(g * 255), int(b * 255)


class Camera:
    __slots__ = ['x', 'y', 'zoom', 'target_x', 'target_y', 'target_zoom', 'width', 'height']

    def __init__(self, width=WIDTH, height=HEIGHT, zoom=1.0):
        self.x = self.y = 0.0
        self.zoom = zoom
        self.target_x = self.target_y = 0.0
        self.target_zoom = zoom
        self.width = width
        self.height = height

    def follow(self, x, y):
        self.target_x, self.target_y = x, y

    def update(self, dt):
        t = min(1.0, dt * 6.0)
        self.x += (self.target_x - self.x) * t
        self.y += (self.target_y - self.y) * t
        self.zoom += (self.target_zoom - self.zoom) * t

    def zoom_in(self):
        self.target_zoom = min(4.0, self.target_zoom * 1.3)

    def zoom_out(self):
        self.target_zoom = max(0.05, self.target_zoom / 1.3)

    def world_to_screen(self, wx, wy):
        return ((wx - self.x) * self.zoom + self.width * 0.5,
                (wy - self.y) * self.zoom + self.height * 0.5)

    def fit(self, bounds, margin=40):
        """Centre on ``(min_x, min_y, max_x, max_y)`` and zoom to fit it."""
        min_x, min_y, max_x, max_y = bounds
        self.x = self.target_x = (min_x + max_x) / 2
        self.y = self.target_y = (min_y + max_y) / 2
        span_x = max(max_x - min_x, 1e-6)
        span_y = max(max_y - min_y, 1e-6)
        zoom = min((self.width - 2 * margin) / span_x, (self.height - 2 * margin) / span_y)
        self.zoom = self.target_zoom = max(0.05, zoom)


class Viewer:
    def __init__(self, track, profile, surface, camera=None):
        self.track = track
        self.profile = profile
        self.surface = surface
        self.camera = camera or Camera(surface.get_width(), surface.get_height())
        self.camera.fit(track.bounds())
        self.font = pygame.font.SysFont("Consolas", 15)

    def draw_track(self, next_cp=None):
        cam = self.camera
        outer = [cam.world_to_screen(x, y) for x, y in self.track.outer]
        pygame.draw.polygon(self.surface, TRACK_FILL, outer)
        pygame.draw.lines(self.surface, BOUNDARY, True, outer, 2)
        if len(self.track.inner) >= 3:
            inner = [cam.world_to_screen(x, y) for x, y in self.track.inner]
            pygame.draw.polygon(self.surface, BACKGROUND, inner)
            pygame.draw.lines(self.surface, BOUNDARY, True, inner, 2)

        for i, cp in enumerate(self.track.checkpoints):
            sx, sy = cam.world_to_screen(cp.x, cp.y)
            color = NEXT_CHECKPOINT if i == next_cp else CHECKPOINT
            pygame.draw.circle(self.surface, color, (int(sx), int(sy)),
                               max(2, int(cp.radius * cam.zoom)), 1)

    def draw_agent(self, agent, is_leader=False):
        sx, sy = self.camera.world_to_screen(*agent.position)
        if agent.status == "dead":
            color = (90, 90, 90)
        else:
            color = hue_to_rgb(agent.color_hue)

        sz = max(3, self.camera.zoom * 5)
        ca, sa = math.cos(agent.heading), math.sin(agent.heading)
        # Triangle pointing in direction of travel
        tip = (sx + ca * sz * 2, sy + sa * sz * 2)
        bl = (sx + (-ca - sa) * sz, sy + (-sa + ca) * sz)
        br = (sx + (-ca + sa) * sz, sy + (-sa - ca) * sz)
        pygame.draw.polygon(self.surface, color, [tip, bl, br])

        if is_leader and agent.status == "active":
            self.draw_sensors(agent)

    def draw_sensors(self, agent):
        p = self.profile
        for offset, reading in zip(p.sensor_angles(), agent.sensor_readings):
            a = agent.heading + offset
            length = p.ray_length * (1.0 - reading)
            ex = agent.position[0] + math.cos(a) * length
            ey = agent.position[1] + math.sin(a) * length
            pygame.draw.line(self.surface, SENSOR,
                             self.camera.world_to_screen(*agent.position),
                             self.camera.world_to_screen(ex, ey), 1)

    def draw_hud(self, snap, sim_speed, paused):
        info = snap.generation
        best_time = "-" if info.best_finish_ticks is None else f"{info.best_finish_ticks} ticks"
        lines = [
            f"Gen: {info.generation}  |  Alive: {snap.active_count}/{len(snap.agents)}",
            f"Best ever: {info.best_fitness_overall:.0f}  (car {info.best_fitness_holder_id})",
            f"Best time: {best_time}",
            f"Progress: {snap.track_progress_percent:.1f}%  |  Speed: {sim_speed}x"
            + ("  |  PAUSED" if paused else ""),
        ]
        for i, line in enumerate(lines):
            self.surface.blit(self.font.render(line, True, (255, 255, 255)), (10, 8 + i * 18))

    def draw(self, snap, sim_speed=1, paused=False):
        self.surface.fill(BACKGROUND)
        leader = snap.leader
        self.draw_track(leader.checkpoint_index if leader else None)
        for agent in snap.agents:
            self.draw_agent(agent, agent is leader)
        self.draw_hud(snap, sim_speed, paused)


def run_viewer(population, width=WIDTH, height=HEIGHT):
    """Interactive loop: SPACE pause, N next generation, R reset, +/- sim speed, ESC quit."""
    os.environ.setdefault('SDL_VIDEO_CENTERED', '1')
    pygame.init()
    try:
        screen = pygame.display.set_mode((width, height))
        pygame.display.set_caption(f"Racetrack NeuralNet - {population.track.name}")
        clock = pygame.time.Clock()
        viewer = Viewer(population.track, population.config.profile, screen)

        snap = population.snapshot()
        paused = False
        running = True
        while running:
            clock.tick(TARGET_FPS)
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE:
                        running = False
                    elif event.key == pygame.K_SPACE:
                        paused = not paused
                    elif event.key == pygame.K_n:
                        population.advance_generation()
                    elif event.key == pygame.K_r:
                        population.reset()
                    elif event.key in (pygame.K_EQUALS, pygame.K_PLUS, pygame.K_KP_PLUS):
                        population.config.sim_speed = min(MAX_SIM_SPEED, population.config.sim_speed + 1)
                    elif event.key in (pygame.K_MINUS, pygame.K_KP_MINUS):
                        population.config.sim_speed = max(1, population.config.sim_speed - 1)

            if not paused:
                snap = population.step_frame()
            else:
                snap = population.snapshot()
            viewer.draw(snap, population.config.sim_speed, paused)
            pygame.display.flip()
    finally:
        pygame.quit()
