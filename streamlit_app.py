# streamlit_app.py
import logging
import tempfile
from pathlib import Path

import streamlit as st
import matplotlib.pyplot as plt

from shoulder_rom.analysis.exporter import samples_to_csv, samples_to_dataframe, summarize_samples, export_basename
from shoulder_rom.analysis.motion_visualizer import MotionVisualizer
from shoulder_rom.analysis.video_overlay import VideoOverlayProcessor
from shoulder_rom.config.config_manager import ConfigManager
from shoulder_rom.core.base import MeasurementMode, Side
from shoulder_rom.core.session import now_ms
from shoulder_rom.utils.pose_detector import PoseDetector
from shoulder_rom.utils.visualization import OverlayRenderer

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Set page configuration
st.set_page_config(
    page_title="Shoulder ROM",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS
st.markdown("""
<style>
.main-header {
    font-size: 2.5rem !important;
    font-weight: 700 !important;
    color: #3366ff !important;
    margin-bottom: 1rem !important;
}
.sub-header {
    font-size: 1.5rem !important;
    font-weight: 600 !important;
    color: #555555 !important;
    margin-bottom: 1rem !important;
}
.info-box {
    background-color: #e6f3ff;
    border-left: 5px solid #3366ff;
    padding: 15px;
    border-radius: 5px;
    margin-bottom: 1rem;
}
</style>
""", unsafe_allow_html=True)

mode_descriptions = {
    MeasurementMode.ABDUCTION: "Face the camera and raise the arm sideways as far as comfortable.",
    MeasurementMode.FLEXION: "Stand side-on to the camera and raise the arm forward as far as comfortable.",
    MeasurementMode.EXTENSION: "Stand side-on to the camera and move the arm backward as far as comfortable.",
}

config_manager = ConfigManager()
video_config = config_manager.get_section("video")

# Sidebar
st.sidebar.markdown("<h1 class='main-header'>Shoulder ROM</h1>", unsafe_allow_html=True)

mode = st.sidebar.selectbox(
    "Movement",
    list(MeasurementMode),
    format_func=lambda m: m.value.title(),
    index=0
)
side = st.sidebar.radio(
    "Side",
    list(Side),
    format_func=lambda s: s.value.title(),
    horizontal=True
)

st.sidebar.markdown(f"<div class='info-box'>{mode_descriptions[mode]}</div>", unsafe_allow_html=True)

# Main content
st.markdown("<h2 class='sub-header'>Recorded video</h2>", unsafe_allow_html=True)
uploaded = st.file_uploader("Upload a video", type=["mp4", "mov", "avi", "mkv"])

if uploaded is not None and st.button("Analyze"):
    work_dir = Path(tempfile.mkdtemp(prefix="shoulder_rom_"))
    input_path = work_dir / uploaded.name
    input_path.write_bytes(uploaded.getvalue())
    output_path = work_dir / f"{export_basename(mode, side, now_ms())}.mp4"

    progress_bar = st.progress(0.0, text="Processing video...")

    def on_progress(done: int, total: int) -> None:
        progress_bar.progress(min(1.0, done / total), text=f"Processing frame {done}/{total}")

    detector = PoseDetector.from_config({**config_manager.get_section("pose"), "static_image_mode": False})
    try:
        processor = VideoOverlayProcessor(
            detector,
            mode=mode,
            side=side,
            target_fps=video_config["target_fps"],
            alpha=video_config["smoothing_alpha"],
            thresholds=config_manager.get_thresholds(),
            renderer=OverlayRenderer.from_config(config_manager.get_section("visualization")),
            fourcc=video_config["fourcc"],
        )
        result = processor.process(input_path, output_path, on_progress=on_progress)
    finally:
        detector.close()

    if result is None:
        st.error("Could not read the uploaded video.")
    else:
        progress_bar.progress(1.0, text=f"Done: {result.frames_written} frames")
        st.session_state.result = result
        st.session_state.result_mode = mode
        st.session_state.result_side = side

if "result" in st.session_state:
    result = st.session_state.result
    summary = summarize_samples(result.samples)

    col1, col2 = st.columns([3, 2])
    with col1:
        st.video(str(result.output_path))
        st.download_button(
            "Download annotated video",
            data=Path(result.output_path).read_bytes(),
            file_name=Path(result.output_path).name,
            mime="video/mp4"
        )

    with col2:
        metric_col1, metric_col2, metric_col3 = st.columns(3)
        metric_col1.metric("Peak", "--" if summary["peak"] is None else f"{summary['peak']:.1f}°")
        metric_col2.metric("Mean", "--" if summary["mean"] is None else f"{summary['mean']:.1f}°")
        metric_col3.metric("Samples", summary["count"])

        st.markdown("<h3 class='sub-header'>Angle Trajectory</h3>", unsafe_allow_html=True)
        if result.samples:
            chart = MotionVisualizer().create_figure(result.samples, st.session_state.result_mode)
            st.pyplot(chart)
            plt.close(chart)

            st.dataframe(samples_to_dataframe(result.samples), hide_index=True)
            st.download_button(
                "Download CSV",
                data=samples_to_csv(result.samples),
                file_name=f"{export_basename(st.session_state.result_mode, st.session_state.result_side, now_ms())}.csv",
                mime="text/csv"
            )
        else:
            st.info("No measurable frames. Check the camera view for the selected movement.")
